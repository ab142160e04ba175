import base64
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

DEFAULT_SAMPLE_RATE = 16000
INT16_SCALE = 32768


@dataclass(frozen=True)
class AudioPayload:
    data: str
    mime_type: str

    @property
    def pcm_bytes(self) -> bytes:
        return base64.b64decode(self.data)


def pcm_mime_type(sample_rate: int = DEFAULT_SAMPLE_RATE) -> str:
    return f"audio/pcm;rate={sample_rate}"


def encode_pcm_frame(
    samples: Sequence[float] | np.ndarray,
    sample_rate: int = DEFAULT_SAMPLE_RATE,
) -> AudioPayload:
    """Encode normalized float samples as base64 little-endian 16-bit PCM.

    Samples are expected in [-1, 1]. Values are scaled by 32768, rounded and
    bounded to the int16 range, so 1.0 encodes as 32767. NaN input is not
    checked.
    """
    scaled = np.rint(np.asarray(samples, dtype=np.float64) * INT16_SCALE)
    pcm = np.clip(scaled, -INT16_SCALE, INT16_SCALE - 1).astype("<i2")
    return AudioPayload(
        data=base64.b64encode(pcm.tobytes()).decode("ascii"),
        mime_type=pcm_mime_type(sample_rate),
    )
