"""In-test stand-ins for the data channel, peer connection, microphone and backend."""

from __future__ import annotations

import json
from types import SimpleNamespace
from typing import Any, Callable

import httpx

OFFER_SDP = (
    "v=0\r\n"
    "o=- 1 1 IN IP4 0.0.0.0\r\n"
    "s=-\r\n"
    "t=0 0\r\n"
    "m=audio 9 UDP/TLS/RTP/SAVPF 96 0\r\n"
    "a=rtpmap:96 opus/48000/2\r\n"
    "a=rtpmap:0 PCMU/8000\r\n"
)
ANSWER_SDP = "v=0\r\no=- 2 2 IN IP4 0.0.0.0\r\ns=-\r\nt=0 0\r\n"


class FakeChannel:
    """Data channel with pyee-style `on` registration and synchronous delivery."""

    def __init__(self, label: str = "oai-events", ready_state: str = "connecting") -> None:
        self.label = label
        self.readyState = ready_state
        self.handlers: dict[str, list[Callable[..., Any]]] = {}
        self.sent: list[str] = []
        self.fail_sends = False

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        self.handlers.setdefault(event, []).append(handler)

    def fire(self, event: str, *args: Any) -> None:
        for handler in list(self.handlers.get(event, [])):
            handler(*args)

    emit = fire

    def open(self) -> None:
        self.readyState = "open"
        self.fire("open")

    def receive(self, event: dict) -> None:
        self.fire("message", json.dumps(event))

    def remote_close(self) -> None:
        self.readyState = "closed"
        self.fire("close")

    def send(self, payload: str) -> None:
        if self.fail_sends:
            raise RuntimeError("channel is closing")
        self.sent.append(payload)

    def sent_events(self) -> list[dict]:
        return [json.loads(p) for p in self.sent]

    def close(self) -> None:
        if self.readyState == "closed":
            return
        self.readyState = "closed"
        self.fire("close")


class FakeTrack:
    def __init__(self, kind: str = "audio") -> None:
        self.kind = kind
        self.stopped = False

    def stop(self) -> None:
        self.stopped = True


class FakeMicrophone:
    def __init__(self) -> None:
        self.audio = FakeTrack()


class FakePeerConnection:
    """Records the negotiation calls SessionTransport makes."""

    instances: list["FakePeerConnection"] = []

    def __init__(self, configuration: Any = None) -> None:
        self.configuration = configuration
        self.transceivers: list[tuple[str, str]] = []
        self.handlers: dict[str, Callable[..., Any]] = {}
        self.tracks: list[FakeTrack] = []
        self.channel: FakeChannel | None = None
        self.localDescription: Any = None
        self.remoteDescription: Any = None
        self.connectionState = "new"
        self.closed = False
        self.remote_error: Exception | None = None
        FakePeerConnection.instances.append(self)

    def addTransceiver(self, kind: str, direction: str) -> None:
        self.transceivers.append((kind, direction))

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        self.handlers[event] = handler

    def addTrack(self, track: FakeTrack) -> None:
        self.tracks.append(track)

    def createDataChannel(self, label: str) -> FakeChannel:
        self.channel = FakeChannel(label)
        return self.channel

    async def createOffer(self) -> Any:
        return SimpleNamespace(sdp=OFFER_SDP, type="offer")

    async def setLocalDescription(self, description: Any) -> None:
        self.localDescription = description

    async def setRemoteDescription(self, description: Any) -> None:
        if self.remote_error is not None:
            raise self.remote_error
        self.remoteDescription = description

    def getSenders(self) -> list[Any]:
        return [SimpleNamespace(track=track) for track in self.tracks]

    async def close(self) -> None:
        self.closed = True
        if self.channel is not None:
            self.channel.close()


class FakeTransport:
    """SessionTransport double handing out a FakeChannel per start."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.on_channel: Callable[[Any], None] | None = None
        self.channel: FakeChannel | None = None
        self.starts = 0
        self.stops = 0
        self.closed = False

    async def start_session(self) -> FakeChannel:
        self.starts += 1
        if self.error is not None:
            raise self.error
        self.channel = FakeChannel()
        if self.on_channel is not None:
            self.on_channel(self.channel)
        return self.channel

    async def stop_session(self) -> None:
        self.stops += 1
        channel, self.channel = self.channel, None
        if channel is not None:
            channel.close()

    async def aclose(self) -> None:
        await self.stop_session()
        self.closed = True


class RecordingBackend:
    """httpx.MockTransport handler emulating the health tracker backend."""

    def __init__(self, *, save_status: int = 200, token_status: int = 200, token_body: Any = None) -> None:
        self.save_status = save_status
        self.token_status = token_status
        self.token_body = token_body if token_body is not None else {"client_secret": {"value": "ek_test"}}
        self.saves: list[dict] = []
        self.requests: list[httpx.Request] = []
        self.patient_window: dict = {"conversations": []}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.endswith("/token"):
            return httpx.Response(self.token_status, json=self.token_body)
        if path.endswith("/conversations"):
            self.saves.append(json.loads(request.content))
            return httpx.Response(self.save_status, json={"id": len(self.saves)})
        if path.endswith("/patient-data"):
            return httpx.Response(200, json=self.patient_window)
        return httpx.Response(404)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


class SignalingServer(RecordingBackend):
    """Backend double that also answers the realtime SDP endpoint."""

    def __init__(self, *, sdp_status: int = 201, answer: str = ANSWER_SDP, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.sdp_status = sdp_status
        self.answer = answer
        self.offers: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v1/realtime/calls":
            self.offers.append(request)
            return httpx.Response(self.sdp_status, text=self.answer)
        return super().__call__(request)


class Clock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now
