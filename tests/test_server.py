"""Tests for the artwork record API and the credential broker endpoint."""

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from main import create_app


class FakeSession:
	def __init__(self, payload):
		self.payload = payload

	def model_dump(self):
		return self.payload


class FakeSessions:
	def __init__(self, fail: bool = False) -> None:
		self.fail = fail
		self.calls = []

	async def create(self, **kwargs):
		self.calls.append(kwargs)
		if self.fail:
			raise RuntimeError("upstream unavailable")
		return FakeSession({"id": "sess_1", "client_secret": {"value": "ek_issued", "expires_at": 1900000000}})


def _fake_openai(sessions: FakeSessions):
	return SimpleNamespace(beta=SimpleNamespace(realtime=SimpleNamespace(sessions=sessions)))


@pytest.fixture
def client(tmp_path, monkeypatch):
	monkeypatch.setenv("DATABASE_DIR", str(tmp_path))
	monkeypatch.setenv("CLIENT_URL", "museum.example")
	monkeypatch.setenv("REALTIME_VOICE", "verse")
	monkeypatch.delenv("OPENAI_API_KEY", raising=False)
	with TestClient(create_app()) as test_client:
		yield test_client


def _create(client, **fields):
	payload = {"title": "Starry Night", "slug": "starry-night", "facts": "Oil on canvas, 1889"}
	payload.update(fields)
	return client.post("/api/artworks", json=payload)


def test_health_reports_missing_openai(client) -> None:
	body = client.get("/health").json()

	assert body == {"ok": True, "db_initialized": True, "openai_available": False}


def test_only_api_routes_are_served(client) -> None:
	paths = {route.path for route in client.app.routes}

	assert "/" not in paths
	assert "/public" not in paths
	assert client.get("/").status_code == 404


def test_create_and_fetch_artwork(client) -> None:
	created = _create(client, image_url="https://museum.example/starry.png")
	assert created.status_code == 200
	record = created.json()

	assert record["title"] == "Starry Night"
	assert record["visitor_url"] == "https://museum.example/talk?slug=starry-night"
	assert record["created_at"] > 0

	by_id = client.get(f"/api/artworks/{record['id']}")
	by_slug = client.get("/api/artworks/slug/starry-night")
	assert by_id.json() == record
	assert by_slug.json() == record
	assert [item["id"] for item in client.get("/api/artworks").json()] == [record["id"]]


def test_visitor_url_falls_back_to_id(client) -> None:
	record = _create(client, slug=None).json()

	assert record["slug"] is None
	assert record["visitor_url"].endswith(f"/talk?id={record['id']}")


def test_unknown_artwork_is_404(client) -> None:
	assert client.get("/api/artworks/nope").status_code == 404
	response = client.get("/api/artworks/slug/nope")
	assert response.status_code == 404
	assert response.json()["detail"] == "Artwork not found"


@pytest.mark.parametrize(
	"fields,detail",
	[
		({"title": "   "}, "Title is required"),
		({"image_url": "file:///etc/passwd"}, "absolute http(s) URL"),
	],
)
def test_create_validation(client, fields, detail) -> None:
	response = _create(client, **fields)

	assert response.status_code == 400
	assert detail in response.json()["detail"]


def test_duplicate_slug_rejected(client) -> None:
	assert _create(client).status_code == 200

	response = _create(client, title="Another Night")

	assert response.status_code == 400
	assert response.json()["detail"] == "Slug already exists"


def test_session_without_api_key_is_500(client) -> None:
	response = client.get("/api/session", params={"artworkId": "a1"})

	assert response.status_code == 500
	assert response.json()["detail"] == "OpenAI API Key is missing on server"


def test_session_instructions_describe_the_artwork(client) -> None:
	sessions = FakeSessions()
	client.app.state.openai_client = _fake_openai(sessions)
	record = _create(client).json()

	response = client.get("/api/session", params={"artworkId": record["id"], "slug": "starry-night"})

	assert response.status_code == 200
	assert response.json()["client_secret"]["value"] == "ek_issued"
	call = sessions.calls[0]
	assert call["voice"] == "verse"
	assert "Starry Night" in call["instructions"]
	assert "1889" in call["instructions"]


def test_session_by_slug_only(client) -> None:
	sessions = FakeSessions()
	client.app.state.openai_client = _fake_openai(sessions)
	_create(client)

	client.get("/api/session", params={"slug": "starry-night"})

	assert "Starry Night" in sessions.calls[0]["instructions"]


def test_session_for_unknown_artwork_uses_generic_instructions(client) -> None:
	sessions = FakeSessions()
	client.app.state.openai_client = _fake_openai(sessions)

	response = client.get("/api/session", params={"artworkId": "missing"})

	assert response.status_code == 200
	assert sessions.calls[0]["instructions"] == "You are a helpful assistant."


def test_session_upstream_failure_is_502(client) -> None:
	client.app.state.openai_client = _fake_openai(FakeSessions(fail=True))

	response = client.get("/api/session")

	assert response.status_code == 502
