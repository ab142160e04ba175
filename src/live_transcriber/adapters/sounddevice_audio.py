import asyncio
import logging
import os
from collections.abc import AsyncIterator

import janus
import numpy as np
import sounddevice as sd

from live_transcriber.ports.audio import AudioCaptureError

logger = logging.getLogger(__name__)


class SounddeviceCapture:
    """Mono float32 microphone capture delivering fixed-size frames."""

    def __init__(
        self,
        device: str | int | None = None,
        sample_rate: int = 16000,
        frame_size: int = 4096,
    ) -> None:
        self._device = device
        self._sample_rate = sample_rate
        self._frame_size = frame_size
        self._stream: sd.InputStream | None = None
        self._queue: janus.Queue[np.ndarray] | None = None
        self._dropped_frames = 0

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    @property
    def frame_size(self) -> int:
        return self._frame_size

    async def start(self) -> None:
        self._queue = janus.Queue(maxsize=32)
        self._dropped_frames = 0

        def audio_callback(indata: np.ndarray, frames: int, time_info, status) -> None:
            if status:
                logger.warning("Audio capture status: %s", status)
            try:
                self._queue.sync_q.put_nowait(indata[:, 0].copy())
            except janus.SyncQueueFull:
                self._dropped_frames += 1

        device = self._resolve_device()
        try:
            self._stream = sd.InputStream(
                device=device,
                samplerate=self._sample_rate,
                channels=1,
                dtype="float32",
                blocksize=self._frame_size,
                callback=audio_callback,
            )
            self._stream.start()
        except sd.PortAudioError as exc:
            self._queue.close()
            self._queue = None
            self._stream = None
            raise AudioCaptureError(str(exc)) from exc

        logger.info(
            "Audio capture started (device=%s, rate=%d, frame=%d samples)",
            device, self._sample_rate, self._frame_size,
        )

    async def stop(self) -> None:
        if self._stream:
            self._stream.stop()
            self._stream.close()
            self._stream = None
        if self._queue:
            self._queue.close()
            await self._queue.wait_closed()
            self._queue = None
        if self._dropped_frames:
            logger.warning("Dropped %d audio frames (consumer too slow)", self._dropped_frames)

    async def read_frames(self) -> AsyncIterator[np.ndarray]:
        if not self._queue:
            return
        while self._queue:
            try:
                frame = await asyncio.wait_for(
                    self._queue.async_q.get(), timeout=1.0
                )
                yield frame
            except asyncio.TimeoutError:
                continue
            except (janus.AsyncQueueShutDown, RuntimeError):
                break

    def _resolve_device(self) -> str | int | None:
        if self._device is None or self._device == "":
            return None
        if isinstance(self._device, int):
            return self._device
        try:
            return int(self._device)
        except ValueError:
            pass
        for i, dev in enumerate(sd.query_devices()):
            if self._device.lower() in dev["name"].lower() and dev["max_input_channels"] > 0:
                logger.info("Resolved device '%s' -> %d (%s)", self._device, i, dev["name"])
                return i
        os.environ["PIPEWIRE_NODE"] = self._device
        logger.info("Device '%s' not in PortAudio, set PIPEWIRE_NODE for PipeWire routing", self._device)
        return None
