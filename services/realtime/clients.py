"""HTTP collaborators of the session orchestrator.

Each collaborator has a small abstract contract and an httpx-backed
implementation. Implementations accept an existing `httpx.AsyncClient` so
the caller controls connection pooling (and tests can mount a
`httpx.MockTransport`).
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple
from urllib.parse import quote

import httpx

from models.session_models import ArtworkContext, EphemeralCredential
from services.realtime.errors import CredentialError, ImageInjectionError, NegotiationError, ResolutionError
from services.realtime.prompts import artwork_instructions
from utils.media_validation import is_supported_image_type, normalize_content_type, validate_image_reference

LOGGER = logging.getLogger(__name__)

MAX_IMAGE_BYTES = 20 * 1024 * 1024


def context_from_record(record: Dict[str, Any]) -> ArtworkContext:
	"""Build an ArtworkContext from an artwork record payload.

	Raises:
		ResolutionError: If the record has no identifier or no title.
	"""
	identifier = record.get("id") or record.get("slug")
	title = (record.get("title") or "").strip()
	if not identifier:
		raise ResolutionError("Artwork record has no identifier.")
	if not title:
		raise ResolutionError(f"Artwork {identifier} has no title.")
	facts = record.get("facts") or ""
	description = record.get("description") or ""
	try:
		image_reference = validate_image_reference(record.get("image_url"))
	except ValueError as exc:
		LOGGER.warning("Ignoring image reference for artwork %s: %s", identifier, exc)
		image_reference = None
	return ArtworkContext(
		identifier=str(identifier),
		title=title,
		descriptive_facts=facts,
		image_reference=image_reference,
		instruction_text=artwork_instructions(title, facts, description, image_provided=image_reference is not None),
		short_name=record.get("slug") or None,
		description=description,
	)


class ContextResolver(ABC):
	@abstractmethod
	async def resolve(self, identifier: Optional[str] = None, short_name: Optional[str] = None) -> ArtworkContext:
		"""Return the current context for an artwork id or short-name."""


class CredentialBroker(ABC):
	@abstractmethod
	async def issue(self, context: ArtworkContext) -> EphemeralCredential:
		"""Return a fresh credential bound to the artwork's instructions."""


class NegotiationEndpoint(ABC):
	@abstractmethod
	async def negotiate(self, offer_sdp: str, credential: EphemeralCredential) -> str:
		"""Submit the offer and return the answer SDP."""


class ImageSource(ABC):
	@abstractmethod
	async def fetch(self, reference: str) -> Tuple[bytes, str]:
		"""Return `(bytes, content_type)` for an image reference."""


def _path_segment(value: str) -> str:
	"""Quote `value` as one URL path segment, dot segments included."""
	segment = quote(value, safe="")
	if segment in (".", ".."):
		segment = segment.replace(".", "%2E")
	return segment


class HttpContextResolver(ContextResolver):
	"""Resolve artworks through the record API."""

	def __init__(self, client: httpx.AsyncClient, base_url: str) -> None:
		self.client = client
		self.base_url = base_url.rstrip("/")

	async def resolve(self, identifier: Optional[str] = None, short_name: Optional[str] = None) -> ArtworkContext:
		if identifier:
			url = f"{self.base_url}/api/artworks/{_path_segment(identifier)}"
		elif short_name:
			url = f"{self.base_url}/api/artworks/slug/{_path_segment(short_name)}"
		else:
			raise ResolutionError("No artwork ID or slug was provided.")

		try:
			response = await self.client.get(url)
		except httpx.HTTPError as exc:
			raise ResolutionError(f"Artwork service unreachable: {exc}") from exc
		if response.status_code == 404:
			raise ResolutionError("Artwork not found")
		if response.status_code >= 400:
			raise ResolutionError(f"Artwork lookup failed with status {response.status_code}")
		try:
			record = response.json()
		except ValueError as exc:
			raise ResolutionError("Artwork service returned invalid JSON") from exc
		if not isinstance(record, dict):
			raise ResolutionError("Artwork service returned an unexpected payload")
		return context_from_record(record)


class HttpCredentialBroker(CredentialBroker):
	"""Fetch ephemeral realtime credentials from the session endpoint."""

	def __init__(self, client: httpx.AsyncClient, base_url: str) -> None:
		self.client = client
		self.base_url = base_url.rstrip("/")

	async def issue(self, context: ArtworkContext) -> EphemeralCredential:
		params = {"artworkId": context.identifier}
		if context.short_name:
			params["slug"] = context.short_name
		try:
			response = await self.client.get(f"{self.base_url}/api/session", params=params)
		except httpx.HTTPError as exc:
			raise CredentialError(f"Credential broker unreachable: {exc}") from exc
		if response.status_code >= 400:
			raise CredentialError(f"Credential broker returned status {response.status_code}")
		try:
			payload = response.json()
		except ValueError as exc:
			raise CredentialError("Credential broker returned invalid JSON") from exc

		secret = payload.get("client_secret") if isinstance(payload, dict) else None
		value = secret.get("value") if isinstance(secret, dict) else None
		if not isinstance(value, str) or not value:
			raise CredentialError("Failed to get ephemeral token")
		expires_at = secret.get("expires_at")
		return EphemeralCredential(value=value, expires_at=int(expires_at) if isinstance(expires_at, (int, float)) else None)


class RealtimeNegotiator(NegotiationEndpoint):
	"""POST the SDP offer to the realtime endpoint and return the answer."""

	def __init__(self, client: httpx.AsyncClient, realtime_url: str, model: str) -> None:
		self.client = client
		self.realtime_url = realtime_url
		self.model = model

	async def negotiate(self, offer_sdp: str, credential: EphemeralCredential) -> str:
		if credential.is_expired():
			raise NegotiationError("Ephemeral credential expired before negotiation")
		LOGGER.debug("Negotiating %s with credential %s", self.model, credential.masked)
		try:
			response = await self.client.post(
				self.realtime_url,
				params={"model": self.model},
				content=offer_sdp.encode("utf-8"),
				headers={
					"Authorization": f"Bearer {credential.value}",
					"Content-Type": "application/sdp",
				},
			)
		except httpx.HTTPError as exc:
			raise NegotiationError(f"Realtime endpoint unreachable: {exc}") from exc

		body = response.text
		if response.status_code >= 400:
			raise NegotiationError(
				f"Realtime endpoint rejected the offer ({response.status_code})",
				status=response.status_code,
				body=body,
			)
		if not body.strip().startswith("v="):
			raise NegotiationError("Realtime endpoint returned an invalid answer", status=response.status_code, body=body)
		return body


class HttpImageSource(ImageSource):
	"""Download artwork images over HTTP.

	The body is streamed and the download is abandoned once it passes
	`max_bytes`, whether or not the server declared a `Content-Length`.
	"""

	def __init__(self, client: httpx.AsyncClient, max_bytes: int = MAX_IMAGE_BYTES) -> None:
		self.client = client
		self.max_bytes = max_bytes

	async def fetch(self, reference: str) -> Tuple[bytes, str]:
		try:
			async with self.client.stream("GET", reference, follow_redirects=True) as response:
				if response.status_code >= 400:
					raise ImageInjectionError(f"Image fetch returned status {response.status_code}")
				content_type = normalize_content_type(response.headers.get("content-type"))
				if not is_supported_image_type(content_type):
					raise ImageInjectionError(f"Unsupported image content type: {content_type}")
				declared = response.headers.get("content-length")
				if declared and declared.isdigit() and int(declared) > self.max_bytes:
					raise ImageInjectionError(f"Image is larger than {self.max_bytes} bytes")
				data = await self._read_bounded(response)
		except httpx.HTTPError as exc:
			raise ImageInjectionError(f"Image fetch failed: {exc}") from exc
		if not data:
			raise ImageInjectionError("Image response was empty")
		return data, content_type

	async def _read_bounded(self, response: httpx.Response) -> bytes:
		"""Read the body, aborting as soon as it exceeds `max_bytes`."""
		buf = bytearray()
		async for chunk in response.aiter_bytes():
			buf.extend(chunk)
			if len(buf) > self.max_bytes:
				raise ImageInjectionError(f"Image is larger than {self.max_bytes} bytes")
		return bytes(buf)
