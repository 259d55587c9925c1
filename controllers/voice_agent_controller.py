"""Ephemeral credential endpoints for the voice agents."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import Request

from services.realtime.prompts import provider_report_instructions, symptom_recorder_instructions
from services.realtime.session_minter import RealtimeSessionMinter


async def symptom_recorder_token(request: Request) -> Dict[str, Any]:
	"""Mint a credential for a patient symptom recording session."""
	minter = RealtimeSessionMinter(request.app.state.openai_client)
	return await minter.mint(symptom_recorder_instructions())


async def provider_report_token(request: Request) -> Dict[str, Any]:
	"""Mint a credential for a clinician report session."""
	minter = RealtimeSessionMinter(request.app.state.openai_client)
	return await minter.mint(provider_report_instructions())
