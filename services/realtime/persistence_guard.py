"""One-shot, best-effort persistence of a session's raw transcript."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from models.session_models import Session
from services.realtime.errors import PersistenceError
from services.realtime.response_parser import extract_messages

LOGGER = logging.getLogger(__name__)

Poster = Callable[[List[Dict[str, str]], str], Awaitable[Any]]
LogSource = Callable[[], List[Dict[str, Any]]]


class PersistenceGuard:
	"""Save the conversation at most once per session, whatever ends it.

	The latch on `session.has_saved` is checked and set before any I/O, so a
	concurrent stop, remote close, channel error or teardown cannot issue a
	second request. Failures are logged and never retried or re-raised.
	"""

	def __init__(self, poster: Poster, log_source: LogSource, session: Optional[Session] = None) -> None:
		self.poster = poster
		self.log_source = log_source
		self.session = session or Session()

	@property
	def has_saved(self) -> bool:
		return self.session.has_saved

	def reset(self, session: Session) -> None:
		self.session = session

	async def save(self, reason: str) -> bool:
		"""Submit the conversation; return True only if the network save succeeded."""
		if self.session.has_saved:
			LOGGER.debug("Save skipped (%s): session already saved", reason)
			return False
		self.session.has_saved = True

		messages = extract_messages(self.log_source())
		if not messages:
			LOGGER.info("Nothing to save for session (%s)", reason)
			return False
		try:
			await self.poster(messages, reason)
		except PersistenceError as exc:
			LOGGER.error("Conversation save failed: %s", exc)
			return False
		return True
