import asyncio
from collections.abc import AsyncIterator

import numpy as np
import pytest

from live_transcriber.domain.audio_frame import AudioPayload
from live_transcriber.domain.transcript import (
    TranscriptAssembler,
    TranscriptFragment,
    TranscriptSnapshot,
)
from live_transcriber.ports.audio import AudioCaptureError
from live_transcriber.ports.transcriber import TranscriberError


SAMPLE_RATE = 16000
FRAME_SIZE = 4096
SHORT_SILENCE_TIMEOUT_SECONDS = 0.05


def generate_silence(frame_size: int = FRAME_SIZE) -> np.ndarray:
    return np.zeros(frame_size, dtype=np.float32)


def generate_sine_wave(
    frequency: float = 440.0,
    amplitude: float = 0.5,
    frame_size: int = FRAME_SIZE,
    sample_rate: int = SAMPLE_RATE,
) -> np.ndarray:
    t = np.arange(frame_size) / sample_rate
    return (np.sin(2 * np.pi * frequency * t) * amplitude).astype(np.float32)


async def wait_until(predicate, timeout_seconds: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout_seconds
    while asyncio.get_running_loop().time() < deadline:
        if predicate():
            return
        await asyncio.sleep(0.005)
    raise AssertionError("Condition not met before timeout")


class FakeAudioCapture:
    def __init__(
        self,
        frames: list[np.ndarray] | None = None,
        fail_on_start: bool = False,
        hold_open: bool = True,
    ) -> None:
        self._frames = frames or []
        self._fail_on_start = fail_on_start
        self._hold_open = hold_open
        self._sample_rate = SAMPLE_RATE
        self._frame_size = FRAME_SIZE
        self._started = False
        self.start_count = 0
        self.stop_count = 0

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    @property
    def frame_size(self) -> int:
        return self._frame_size

    async def start(self) -> None:
        self.start_count += 1
        if self._fail_on_start:
            raise AudioCaptureError("Permission denied")
        self._started = True

    async def stop(self) -> None:
        self.stop_count += 1
        self._started = False

    async def read_frames(self) -> AsyncIterator[np.ndarray]:
        for frame in self._frames:
            yield frame
            await asyncio.sleep(0)
        while self._hold_open and self._started:
            await asyncio.sleep(0.01)

    def feed_frames(self, frames: list[np.ndarray]) -> None:
        self._frames.extend(frames)


class FakeTranscriber:
    def __init__(self, fail_on_start: bool = False) -> None:
        self._queue: asyncio.Queue[TranscriptFragment | Exception | None] = asyncio.Queue()
        self._fail_on_start = fail_on_start
        self._session_active = False
        self.payloads: list[AudioPayload] = []
        self.start_session_count = 0
        self.close_session_count = 0

    @property
    def session_active(self) -> bool:
        return self._session_active

    async def start_session(self) -> None:
        self.start_session_count += 1
        if self._fail_on_start:
            raise TranscriberError("Connection refused")
        self._session_active = True

    async def send_audio(self, payload: AudioPayload) -> None:
        self.payloads.append(payload)

    async def get_transcripts(self) -> AsyncIterator[TranscriptFragment]:
        while True:
            item = await self._queue.get()
            if item is None:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    async def close_session(self) -> None:
        self.close_session_count += 1
        self._session_active = False

    def push(self, text: str, is_final: bool = False) -> None:
        self._queue.put_nowait(TranscriptFragment(text=text, is_final=is_final))

    def fail(self, message: str = "socket closed unexpectedly") -> None:
        self._queue.put_nowait(TranscriberError(message))

    def end(self) -> None:
        self._queue.put_nowait(None)


class RecordingListener:
    def __init__(self) -> None:
        self.snapshots: list[TranscriptSnapshot] = []

    def __call__(self, snapshot: TranscriptSnapshot) -> None:
        self.snapshots.append(snapshot)

    @property
    def last(self) -> TranscriptSnapshot | None:
        return self.snapshots[-1] if self.snapshots else None


@pytest.fixture
def silence_frames():
    return [generate_silence() for _ in range(3)]


@pytest.fixture
def speech_frames():
    return [generate_sine_wave() for _ in range(3)]


@pytest.fixture
def fake_capture():
    return FakeAudioCapture()


@pytest.fixture
def fake_transcriber():
    return FakeTranscriber()


@pytest.fixture
def listener():
    return RecordingListener()


@pytest.fixture
def assembler(listener):
    return TranscriptAssembler(
        silence_timeout_seconds=SHORT_SILENCE_TIMEOUT_SECONDS,
        listener=listener,
    )
