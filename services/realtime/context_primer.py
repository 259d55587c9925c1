"""Ground a report session in the patient's saved data before the first exchange."""

from __future__ import annotations

import logging
from typing import Optional

from services.realtime.backend_client import BackendClient
from services.realtime.event_stream import EventStream
from services.realtime.prompts import patient_context_message

LOGGER = logging.getLogger(__name__)


class ContextPrimer:
	"""Fetch a patient data window and inject it as the first user message."""

	def __init__(self, backend: BackendClient, patient_id: str, window_days: int = 7) -> None:
		if not patient_id:
			raise ValueError("patient_id is required for context priming.")
		self.backend = backend
		self.patient_id = patient_id
		self.window_days = window_days

	async def prime(self, stream: EventStream) -> Optional[bool]:
		"""Send the context message and request a response; None if the channel is closed."""
		if not stream.is_open:
			return None
		report = await self.backend.fetch_patient_window(self.patient_id, self.window_days)
		LOGGER.info("Priming report session with %d conversations", len(report.get("conversations") or []))
		return stream.send_user_text(patient_context_message(report))
