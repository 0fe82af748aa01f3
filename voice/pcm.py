"""Linear PCM16 codec (mono, little-endian)."""

import numpy as np

INPUT_SAMPLE_RATE = 16000
OUTPUT_SAMPLE_RATE = 24000
CAPTURE_BLOCK_SIZE = 4096


def float_to_pcm16(samples) -> bytes:
    """Encode float samples to raw PCM16 bytes.

    Samples are clamped to [-1, 1]; negatives scale by 32768 and positives by
    32767, truncating toward zero.
    """
    data = np.clip(np.asarray(samples, dtype=np.float32).reshape(-1), -1.0, 1.0)
    scaled = np.where(data < 0, data * 32768.0, data * 32767.0)
    return scaled.astype("<i2").tobytes()


def pcm16_to_float(frame: bytes) -> np.ndarray:
    """Decode raw PCM16 bytes to float32 samples (``int16 / 32768``).

    A trailing odd byte is dropped.
    """
    usable = len(frame) - (len(frame) % 2)
    ints = np.frombuffer(frame[:usable], dtype="<i2")
    return ints.astype(np.float32) / 32768.0
