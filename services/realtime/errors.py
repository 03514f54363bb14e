"""Error taxonomy for realtime visitor sessions."""

from __future__ import annotations

from typing import Optional


class SessionError(Exception):
	"""Base class for every failure raised by the session orchestrator."""


class ResolutionError(SessionError):
	"""The artwork could not be resolved (missing id, not found, unreachable)."""


class CredentialError(SessionError):
	"""The credential broker was unreachable or returned an unusable payload."""


class MicrophonePermissionError(SessionError):
	"""Microphone capture was denied or no capture device is available."""


class NegotiationError(SessionError):
	"""The realtime endpoint rejected the offer or the transport never connected."""

	def __init__(self, message: str, status: Optional[int] = None, body: str = "") -> None:
		super().__init__(message)
		self.status = status
		self.body = body


class ChannelProtocolError(SessionError):
	"""A control message could not be decoded or sent in the required order."""


class ImageInjectionError(SessionError):
	"""The artwork image could not be fetched or encoded."""


class TransportDisconnect(SessionError):
	"""The remote side or the network ended the call."""
