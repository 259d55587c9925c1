"""Smoothed amplitude of the assistant's audio, for speaking indicators only."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, Callable, Optional

import numpy as np
from aiortc.mediastreams import MediaStreamError

LOGGER = logging.getLogger(__name__)

LevelListener = Callable[[float, bool], None]


def normalized_samples(samples: Any) -> np.ndarray:
	"""Return samples scaled to [-1, 1] whatever the PCM sample type."""
	arr = np.asarray(samples)
	if arr.dtype == np.uint8:
		return (arr.astype(np.float64) - 128.0) / 128.0
	if np.issubdtype(arr.dtype, np.integer):
		return arr.astype(np.float64) / float(np.iinfo(arr.dtype).max + 1)
	return arr.astype(np.float64)


def rms(samples: Any) -> float:
	arr = normalized_samples(samples)
	if arr.size == 0:
		return 0.0
	return float(np.sqrt(np.mean(arr * arr)))


class AudioLevelMonitor:
	"""Track a 0..1 level and an "is speaking" flag from remote audio frames."""

	def __init__(
		self,
		threshold: float = 0.06,
		smoothing: float = 0.8,
		gain: float = 3.0,
		on_level: Optional[LevelListener] = None,
	) -> None:
		self.threshold = threshold
		self.smoothing = smoothing
		self.gain = gain
		self.on_level = on_level
		self.level = 0.0
		self.is_speaking = False
		self._smooth = 0.0
		self._task: Optional[asyncio.Task] = None

	def tick(self, samples: Any) -> float:
		"""Fold one buffer of samples into the smoothed level and return it."""
		self._smooth = self._smooth * self.smoothing + rms(samples) * (1.0 - self.smoothing)
		self.level = min(1.0, max(0.0, self._smooth * self.gain))
		self.is_speaking = self.level > self.threshold
		if self.on_level is not None:
			self.on_level(self.level, self.is_speaking)
		return self.level

	def reset(self) -> None:
		self._smooth = 0.0
		self.level = 0.0
		self.is_speaking = False

	def attach(self, track: Any) -> None:
		"""Start consuming frames from a remote audio track."""
		self._task = asyncio.ensure_future(self._consume(track))

	async def _consume(self, track: Any) -> None:
		while True:
			try:
				frame = await track.recv()
			except MediaStreamError:
				LOGGER.debug("Remote audio track ended")
				return
			self.tick(frame.to_ndarray())

	async def detach(self) -> None:
		task, self._task = self._task, None
		if task is not None:
			task.cancel()
			with contextlib.suppress(asyncio.CancelledError):
				await task
		self.reset()
