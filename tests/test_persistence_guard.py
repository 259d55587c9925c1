from __future__ import annotations

import asyncio

from fakes import RecordingBackend

from models.session_models import Session
from services.realtime import response_parser as protocol
from services.realtime.backend_client import BackendClient
from services.realtime.errors import PersistenceError
from services.realtime.persistence_guard import PersistenceGuard
from services.realtime.settings import RealtimeSettings

LOG = [
    {"type": "session.created"},
    {"type": protocol.ITEM_CREATE, "item": {"role": "user", "content": [{"text": " Hello "}]}},
    {"type": protocol.RESPONSE_CREATE},
    {"type": protocol.AUDIO_TRANSCRIPT_DONE, "transcript": "What symptom are you having?"},
    {"type": protocol.TRANSCRIPTION_COMPLETED, "transcript": "A migraine"},
    {"type": protocol.TRANSCRIPTION_COMPLETED, "transcript": ""},
]


class RecordingPoster:
    def __init__(self, error: Exception | None = None) -> None:
        self.calls: list[tuple[list, str]] = []
        self.error = error

    async def __call__(self, messages, reason):
        self.calls.append((messages, reason))
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return {"id": 1}


def test_payload_is_role_filtered_trimmed_log():
    poster = RecordingPoster()
    guard = PersistenceGuard(poster, lambda: LOG)

    assert asyncio.run(guard.save("ended-by-user")) is True
    assert poster.calls == [
        (
            [
                {"role": "patient", "text": "Hello"},
                {"role": "assistant", "text": "What symptom are you having?"},
                {"role": "patient", "text": "A migraine"},
            ],
            "ended-by-user",
        )
    ]


def test_empty_transcript_makes_no_network_call():
    poster = RecordingPoster()
    guard = PersistenceGuard(poster, lambda: [{"type": "session.created"}])

    assert asyncio.run(guard.save("channel-closed")) is False
    assert poster.calls == []
    assert guard.has_saved is True


def test_concurrent_triggers_save_once():
    poster = RecordingPoster()
    guard = PersistenceGuard(poster, lambda: LOG)

    async def scenario():
        return await asyncio.gather(
            guard.save("ended-by-user"),
            guard.save("channel-closed"),
            guard.save("channel-error"),
            guard.save("teardown"),
        )

    results = asyncio.run(scenario())
    assert results == [True, False, False, False]
    assert len(poster.calls) == 1


def test_failure_is_swallowed_and_latch_stays_closed():
    poster = RecordingPoster(error=PersistenceError("HTTP 503"))
    guard = PersistenceGuard(poster, lambda: LOG)

    assert asyncio.run(guard.save("ended-by-user")) is False
    assert asyncio.run(guard.save("ended-by-user")) is False
    assert len(poster.calls) == 1


def test_reset_opens_latch_for_new_session():
    poster = RecordingPoster()
    guard = PersistenceGuard(poster, lambda: LOG)
    asyncio.run(guard.save("ended-by-user"))

    guard.reset(Session())
    asyncio.run(guard.save("ended-by-user"))

    assert len(poster.calls) == 2


def test_backend_client_posts_conversation_with_bearer():
    recorder = RecordingBackend()

    async def scenario():
        backend = BackendClient(RealtimeSettings(), token="patient-7", http_client=recorder.client())
        guard = PersistenceGuard(backend.save_conversation, lambda: LOG)
        saved = await guard.save("channel-closed")
        await backend.http.aclose()
        return saved

    assert asyncio.run(scenario()) is True
    request = recorder.requests[0]
    assert str(request.url) == "http://localhost:8800/api/conversations"
    assert request.headers["Authorization"] == "Bearer patient-7"
    assert recorder.saves[0]["reason"] == "channel-closed"
    assert len(recorder.saves[0]["messages"]) == 3


def test_backend_error_status_is_logged_not_raised():
    recorder = RecordingBackend(save_status=500)

    async def scenario():
        backend = BackendClient(RealtimeSettings(), http_client=recorder.client())
        guard = PersistenceGuard(backend.save_conversation, lambda: LOG)
        saved = await guard.save("ended-by-user")
        await backend.http.aclose()
        return saved

    assert asyncio.run(scenario()) is False
    assert len(recorder.saves) == 1
