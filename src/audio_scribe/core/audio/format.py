from __future__ import annotations

import numpy as np


def mixdown_to_mono_f32(samples: np.ndarray) -> np.ndarray:
    if samples.ndim == 1:
        mono = samples
    elif samples.ndim == 2:
        mono = samples.mean(axis=1)
    else:
        raise ValueError("samples must be 1D (mono) or 2D (frames, channels)")

    return np.asarray(mono, dtype=np.float32)


def float32_to_pcm16le_bytes(samples: np.ndarray) -> bytes:
    samples = np.asarray(samples, dtype=np.float32)
    clipped = np.clip(samples, -1.0, 1.0)
    int16 = np.round(clipped * 32767.0).astype("<i2")
    return int16.tobytes()


def blocksize_frames(*, sample_rate_hz: int, blocksize_ms: int) -> int:
    if sample_rate_hz <= 0:
        raise ValueError("sample_rate_hz must be > 0")
    if blocksize_ms <= 0:
        raise ValueError("blocksize_ms must be > 0")
    return max(1, sample_rate_hz * blocksize_ms // 1000)
