"""Append-only diagnostic trace shown to the visitor UI."""

from __future__ import annotations

import logging
from typing import Callable, Iterator, List, Tuple

from models.session_models import TraceEntry

LOGGER = logging.getLogger(__name__)

TraceListener = Callable[[TraceEntry], None]


class TraceLog:
	"""Ordered, timestamped diagnostic lines for one orchestrator.

	Appending is a list append plus listener notification. Listeners are
	observers only; an exception raised by one is logged and does not reach
	the caller.
	"""

	def __init__(self) -> None:
		self._entries: List[TraceEntry] = []
		self._listeners: List[TraceListener] = []

	def append(self, message: str) -> TraceEntry:
		entry = TraceEntry(message=message)
		self._entries.append(entry)
		LOGGER.debug("trace: %s", message)
		for listener in list(self._listeners):
			try:
				listener(entry)
			except Exception:
				LOGGER.exception("Trace listener failed")
		return entry

	def subscribe(self, listener: TraceListener) -> Callable[[], None]:
		"""Register a listener and return a callable that removes it."""
		self._listeners.append(listener)

		def _unsubscribe() -> None:
			if listener in self._listeners:
				self._listeners.remove(listener)

		return _unsubscribe

	@property
	def entries(self) -> Tuple[TraceEntry, ...]:
		return tuple(self._entries)

	def messages(self) -> List[str]:
		"""Return the bare messages, oldest first."""
		return [entry.message for entry in self._entries]

	def lines(self) -> List[str]:
		"""Return the rendered `HH:MM:SS - message` lines."""
		return [entry.render() for entry in self._entries]

	def __len__(self) -> int:
		return len(self._entries)

	def __iter__(self) -> Iterator[TraceEntry]:
		return iter(list(self._entries))
