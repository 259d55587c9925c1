"""WebRTC media and signaling lifecycle for a realtime voice session."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Set

import httpx
from aiortc import RTCConfiguration, RTCIceServer, RTCPeerConnection, RTCSessionDescription
from aiortc.contrib.media import MediaBlackhole, MediaPlayer, MediaRecorder, MediaRelay

from services.realtime.audio_level import AudioLevelMonitor
from services.realtime.backend_client import BackendClient
from services.realtime.errors import ChannelError, MediaPermissionError, SessionConnectionError, SignalingError
from services.realtime.settings import RealtimeSettings

LOGGER = logging.getLogger(__name__)

DATA_CHANNEL_LABEL = "oai-events"
_OPUS_RTPMAP_RE = re.compile(r"^a=rtpmap:(\d+) opus/", re.IGNORECASE)


@dataclass(frozen=True)
class MicrophoneConstraints:
	"""Capture intent for the patient's microphone."""

	sample_rate: int = 16000
	channels: int = 1
	echo_cancellation: bool = True
	noise_suppression: bool = True
	auto_gain_control: bool = True


def open_microphone(settings: RealtimeSettings, constraints: MicrophoneConstraints) -> MediaPlayer:
	"""Open the configured ffmpeg capture device as a mono microphone source.

	ffmpeg applies no echo cancellation, noise suppression or gain control; those
	flags are honoured by pointing MIC_DEVICE at a processed source (for example
	a PulseAudio echo-cancel source).
	"""
	options = {"sample_rate": str(constraints.sample_rate), "channels": str(constraints.channels)}
	LOGGER.debug("Opening microphone %s (%s) with %s", settings.mic_device, settings.mic_format, constraints)
	return MediaPlayer(settings.mic_device, format=settings.mic_format, options=options)


def open_audio_sink(settings: RealtimeSettings) -> Any:
	"""Return where assistant audio goes: a recorder if configured, else a blackhole."""
	if settings.audio_sink:
		return MediaRecorder(settings.audio_sink)
	return MediaBlackhole()


def apply_dtx_hint(sdp: str) -> str:
	"""Request discontinuous transmission for every Opus payload in an SDP blob."""
	lines = sdp.splitlines()
	opus_payloads = {m.group(1) for m in (_OPUS_RTPMAP_RE.match(line) for line in lines) if m}
	if not opus_payloads:
		return sdp

	result: List[str] = []
	with_fmtp: Set[str] = set()
	for line in lines:
		if line.startswith("a=fmtp:"):
			payload, _, params = line[len("a=fmtp:"):].partition(" ")
			if payload in opus_payloads:
				with_fmtp.add(payload)
				if "usedtx=" not in params:
					line = f"a=fmtp:{payload} {params};usedtx=1" if params else f"a=fmtp:{payload} usedtx=1"
		result.append(line)

	missing = opus_payloads - with_fmtp
	if missing:
		patched: List[str] = []
		for line in result:
			patched.append(line)
			match = _OPUS_RTPMAP_RE.match(line)
			if match and match.group(1) in missing:
				patched.append(f"a=fmtp:{match.group(1)} usedtx=1")
		result = patched
	return "\r\n".join(result) + "\r\n"


class SessionTransport:
	"""Own the peer connection, microphone capture, remote audio and data channel.

	`start_session()` performs credential fetch, media capture and the SDP
	offer/answer exchange and returns the data channel. `stop_session()` is
	idempotent and safe before or during `start_session()`.
	"""

	def __init__(
		self,
		settings: RealtimeSettings,
		backend: BackendClient,
		*,
		http_client: Optional[httpx.AsyncClient] = None,
		level_monitor: Optional[AudioLevelMonitor] = None,
		constraints: MicrophoneConstraints = MicrophoneConstraints(),
		peer_factory: Callable[..., Any] = RTCPeerConnection,
		microphone_factory: Callable[[RealtimeSettings, MicrophoneConstraints], Any] = open_microphone,
		sink_factory: Callable[[RealtimeSettings], Any] = open_audio_sink,
	) -> None:
		self.settings = settings
		self.backend = backend
		self.level_monitor = level_monitor
		self.constraints = constraints
		self.peer_factory = peer_factory
		self.microphone_factory = microphone_factory
		self.sink_factory = sink_factory
		self._owns_http = http_client is None
		self.http = http_client or httpx.AsyncClient(timeout=settings.http_timeout_s)
		self.on_channel: Optional[Callable[[Any], None]] = None
		self.pc: Any = None
		self.channel: Any = None
		self.microphone: Any = None
		self.sink: Any = None
		self._relay: Optional[MediaRelay] = None
		self._tasks: Set[asyncio.Future] = set()
		self._generation = 0

	async def start_session(self) -> Any:
		"""Negotiate the connection and return the application data channel.

		Raises:
			CredentialError, MediaPermissionError, SignalingError: start aborted;
				everything acquired so far has been released.
		"""
		generation = self._generation
		try:
			return await self._negotiate(generation)
		except BaseException:
			await self._release()
			raise

	async def _negotiate(self, generation: int) -> Any:
		credential = await self.backend.fetch_credential()
		self._ensure_current(generation)

		pc = self.peer_factory(configuration=RTCConfiguration(iceServers=[RTCIceServer(urls=self.settings.ice_server)]))
		self.pc = pc
		pc.addTransceiver("audio", direction="sendrecv")
		pc.on("track", self._handle_remote_track)
		pc.on("connectionstatechange", self._handle_connection_state)

		track = await self._capture_microphone()
		self._ensure_current(generation)
		pc.addTrack(track)

		self.channel = pc.createDataChannel(DATA_CHANNEL_LABEL)
		if self.on_channel is not None:
			self.on_channel(self.channel)

		offer = await pc.createOffer()
		await pc.setLocalDescription(offer)
		self._ensure_current(generation)

		answer = await self._exchange_sdp(apply_dtx_hint(pc.localDescription.sdp), credential)
		self._ensure_current(generation)
		try:
			await pc.setRemoteDescription(RTCSessionDescription(sdp=answer, type="answer"))
		except Exception as exc:
			raise SignalingError(f"Malformed SDP answer: {exc}") from exc
		LOGGER.info("Realtime peer connection negotiated")
		return self.channel

	async def _capture_microphone(self) -> Any:
		try:
			microphone = await asyncio.to_thread(self.microphone_factory, self.settings, self.constraints)
		except Exception as exc:
			raise MediaPermissionError(f"Microphone access denied: {exc}") from exc
		self.microphone = microphone
		track = getattr(microphone, "audio", None)
		if track is None:
			raise MediaPermissionError("Microphone access denied: no audio track available")
		return track

	async def _exchange_sdp(self, offer_sdp: str, credential: str) -> str:
		try:
			response = await self.http.post(
				self.settings.realtime_url,
				content=offer_sdp,
				headers={"Authorization": f"Bearer {credential}", "Content-Type": "application/sdp"},
			)
		except httpx.HTTPError as exc:
			raise SignalingError(f"SDP exchange failed: {exc}") from exc
		if not response.is_success:
			raise SignalingError(
				f"SDP exchange failed: {response.status_code} - {response.text}", status_code=response.status_code
			)
		answer = response.text
		if not answer.lstrip().startswith("v="):
			raise SignalingError("SDP exchange failed: malformed answer")
		return answer

	def _ensure_current(self, generation: int) -> None:
		if generation != self._generation:
			raise SessionConnectionError("Session stopped while connecting")

	def _handle_connection_state(self) -> None:
		state = getattr(self.pc, "connectionState", None)
		LOGGER.debug("Peer connection state: %s", state)
		if state == "failed" and self.channel is not None:
			self.channel.emit("error", ChannelError("Peer connection failed"))

	def _handle_remote_track(self, track: Any) -> None:
		if track.kind != "audio":
			return
		LOGGER.info("Remote audio track received")
		self._relay = self._relay or MediaRelay()
		self.sink = self.sink_factory(self.settings)
		self.sink.addTrack(self._relay.subscribe(track))
		self._spawn(self.sink.start())
		if self.level_monitor is not None:
			self.level_monitor.attach(self._relay.subscribe(track))

	def _spawn(self, awaitable: Any) -> None:
		task = asyncio.ensure_future(awaitable)
		self._tasks.add(task)
		task.add_done_callback(self._tasks.discard)

	async def stop_session(self) -> None:
		"""Tear down channel, local tracks, peer connection and audio sink."""
		self._generation += 1
		await self._release()

	async def _release(self) -> None:
		channel, self.channel = self.channel, None
		if channel is not None:
			try:
				channel.close()
			except Exception as exc:
				LOGGER.debug("Data channel close failed: %s", exc)

		pc, self.pc = self.pc, None
		if pc is not None:
			for sender in pc.getSenders():
				if sender.track is not None:
					sender.track.stop()
			try:
				await pc.close()
			except Exception as exc:
				LOGGER.debug("Peer connection close failed: %s", exc)

		microphone, self.microphone = self.microphone, None
		if microphone is not None and getattr(microphone, "audio", None) is not None:
			microphone.audio.stop()

		sink, self.sink = self.sink, None
		if sink is not None:
			try:
				await sink.stop()
			except Exception as exc:
				LOGGER.debug("Audio sink stop failed: %s", exc)

		if self.level_monitor is not None:
			await self.level_monitor.detach()
		self._relay = None

	async def aclose(self) -> None:
		await self.stop_session()
		if self._owns_http:
			await self.http.aclose()
