"""Microphone capture.

Opens a 16 kHz mono ``sounddevice.InputStream`` and hands each 4096-sample
block, encoded as raw PCM16, to an asyncio queue. The device callback runs on
PortAudio's thread, so frames cross into the event loop with
``call_soon_threadsafe``.

Acquisition failures are classified into ``MicrophoneError`` kinds; nothing is
retried.
"""

import asyncio
from typing import Optional

from core.errors import MicrophoneError, MicrophoneErrorKind
from core.observability.logging import get_logger
from voice.pcm import CAPTURE_BLOCK_SIZE, INPUT_SAMPLE_RATE, float_to_pcm16


logger = get_logger(__name__)


def classify_device_error(exc: Exception) -> MicrophoneErrorKind:
    """Map a PortAudio / OS error to a microphone error kind."""
    if isinstance(exc, PermissionError):
        return MicrophoneErrorKind.PERMISSION_DENIED
    text = str(exc).lower()
    if "permission" in text or "not allowed" in text or "access denied" in text:
        return MicrophoneErrorKind.PERMISSION_DENIED
    if "no default input device" in text or "invalid device" in text or "no such device" in text \
            or "device unavailable" in text or "not found" in text:
        return MicrophoneErrorKind.NOT_FOUND
    return MicrophoneErrorKind.UNAVAILABLE


class MicrophoneCapture:
    """Streams encoded microphone blocks into ``frames``."""

    def __init__(
        self,
        sample_rate: int = INPUT_SAMPLE_RATE,
        block_size: int = CAPTURE_BLOCK_SIZE,
        device: Optional[int] = None,
        max_queued_frames: int = 64,
    ):
        self.sample_rate = sample_rate
        self.block_size = block_size
        self.device = device
        self.frames: "asyncio.Queue[bytes]" = asyncio.Queue(maxsize=max_queued_frames)
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._stream = None
        self.dropped_frames = 0

    @property
    def active(self) -> bool:
        return self._stream is not None

    def _enqueue(self, frame: bytes) -> None:
        try:
            self.frames.put_nowait(frame)
        except asyncio.QueueFull:
            self.dropped_frames += 1

    def _callback(self, indata, frames, time_info, status) -> None:
        if status:
            logger.debug("Input stream status", extra_fields={"status": str(status)})
        frame = float_to_pcm16(indata[:, 0])
        if self._loop is not None:
            self._loop.call_soon_threadsafe(self._enqueue, frame)

    def start(self) -> None:
        """Acquire the microphone. Raises ``MicrophoneError`` on failure."""
        if self._stream is not None:
            return
        self._loop = asyncio.get_running_loop()

        try:
            import sounddevice as sd
        except OSError as e:
            logger.error("Audio backend unavailable", extra_fields={"error": str(e)})
            raise MicrophoneError(MicrophoneErrorKind.UNAVAILABLE, str(e)) from e

        try:
            stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=1,
                dtype="float32",
                blocksize=self.block_size,
                device=self.device,
                callback=self._callback,
            )
            stream.start()
        except (sd.PortAudioError, OSError, ValueError) as e:
            kind = classify_device_error(e)
            logger.error("Microphone acquisition failed", extra_fields={"kind": kind.value, "error": str(e)})
            raise MicrophoneError(kind, str(e)) from e

        self._stream = stream
        logger.info("Microphone capture started", extra_fields={"sample_rate": self.sample_rate})

    def stop(self) -> None:
        """Stop delivering frames and release the device."""
        if self._stream is None:
            return
        stream, self._stream = self._stream, None
        try:
            stream.stop()
        finally:
            stream.close()
        logger.info("Microphone released", extra_fields={"dropped_frames": self.dropped_frames})
