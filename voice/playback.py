"""Agent audio playback.

``PCMPlaybackBuffer`` is the playback state machine. Incoming samples are
copied into the tail of a preallocated array whose capacity doubles when
full; a read cursor advances on each render callback so reads never shift the
buffer. Consumed samples are dropped in bulk once the cursor passes a
compaction threshold.

    IDLE --append (pending >= start threshold)--> PLAYING
    PLAYING --clear (barge-in)--> IDLE

While IDLE, reads return silence and consume nothing. While PLAYING, an
underrun pads with silence and playback stays armed.

All mutations hold one lock, so a ``clear`` is never followed by a read of
samples appended before it, even though ``append`` runs on the event loop and
``read`` runs on the audio device thread.
"""

import threading
from typing import Optional

import numpy as np

from core.observability.logging import get_logger
from voice.pcm import OUTPUT_SAMPLE_RATE, pcm16_to_float


logger = get_logger(__name__)

START_THRESHOLD_SECONDS = 0.3
START_THRESHOLD_SAMPLES = int(OUTPUT_SAMPLE_RATE * START_THRESHOLD_SECONDS)
COMPACT_THRESHOLD_SAMPLES = 48000
INITIAL_CAPACITY_SAMPLES = OUTPUT_SAMPLE_RATE


class PCMPlaybackBuffer:
    """Thread-safe playback buffer with a start gate and barge-in clear."""

    def __init__(
        self,
        start_threshold: int = START_THRESHOLD_SAMPLES,
        compact_threshold: int = COMPACT_THRESHOLD_SAMPLES,
        initial_capacity: int = INITIAL_CAPACITY_SAMPLES,
    ):
        self.start_threshold = start_threshold
        self.compact_threshold = compact_threshold
        self._buffer = np.zeros(max(1, initial_capacity), dtype=np.float32)
        self._read_index = 0
        self._write_index = 0
        self._playing = False
        self._lock = threading.Lock()
        self.reallocations = 0

    @property
    def playing(self) -> bool:
        return self._playing

    @property
    def capacity(self) -> int:
        return len(self._buffer)

    @property
    def pending(self) -> int:
        """Buffered samples not yet rendered."""
        with self._lock:
            return self._write_index - self._read_index

    def append(self, samples) -> None:
        data = np.asarray(samples, dtype=np.float32).reshape(-1)
        if data.size == 0:
            return
        with self._lock:
            if self._read_index > self.compact_threshold:
                self._compact()
            end = self._write_index + data.size
            if end > len(self._buffer):
                self._grow(end)
            self._buffer[self._write_index:end] = data
            self._write_index = end
            if not self._playing and self._write_index - self._read_index >= self.start_threshold:
                self._playing = True
                logger.debug("Playback started (pre-buffer filled)")

    def append_pcm16(self, frame: bytes) -> None:
        self.append(pcm16_to_float(frame))

    def read(self, count: int) -> np.ndarray:
        """Next ``count`` samples for the device, silence-padded."""
        out = np.zeros(count, dtype=np.float32)
        with self._lock:
            if not self._playing:
                return out
            available = self._write_index - self._read_index
            n = min(count, available)
            if n > 0:
                out[:n] = self._buffer[self._read_index:self._read_index + n]
                self._read_index += n
            if self._read_index > self.compact_threshold:
                self._compact()
        return out

    def clear(self) -> int:
        """Barge-in: drop everything pending and return to the pre-buffering state.

        Returns the number of discarded samples.
        """
        with self._lock:
            dropped = self._write_index - self._read_index
            self._read_index = 0
            self._write_index = 0
            self._playing = False
        logger.debug("Playback buffer cleared", extra_fields={"dropped_samples": dropped})
        return dropped

    def _grow(self, required: int) -> None:
        capacity = len(self._buffer)
        while capacity < required:
            capacity *= 2
        grown = np.zeros(capacity, dtype=np.float32)
        grown[:self._write_index] = self._buffer[:self._write_index]
        self._buffer = grown
        self.reallocations += 1

    def _compact(self) -> None:
        remaining = self._write_index - self._read_index
        # numpy buffers overlapping slice assignment
        self._buffer[:remaining] = self._buffer[self._read_index:self._write_index]
        self._read_index = 0
        self._write_index = remaining


class SpeakerOutput:
    """Renders a ``PCMPlaybackBuffer`` through a sounddevice output stream."""

    def __init__(
        self,
        buffer: PCMPlaybackBuffer,
        sample_rate: int = OUTPUT_SAMPLE_RATE,
        device: Optional[int] = None,
    ):
        self.buffer = buffer
        self.sample_rate = sample_rate
        self.device = device
        self._stream = None

    def _callback(self, outdata, frames, time_info, status) -> None:
        if status:
            logger.debug("Output stream status", extra_fields={"status": str(status)})
        outdata[:, 0] = self.buffer.read(frames)

    def start(self) -> None:
        if self._stream is not None:
            return
        # PortAudio is loaded on first use; the buffer itself needs no device
        import sounddevice as sd

        self._stream = sd.OutputStream(
            samplerate=self.sample_rate,
            channels=1,
            dtype="float32",
            device=self.device,
            callback=self._callback,
        )
        self._stream.start()

    def close(self) -> None:
        if self._stream is None:
            return
        stream, self._stream = self._stream, None
        try:
            stream.stop()
        finally:
            stream.close()
