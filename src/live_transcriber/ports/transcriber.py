from typing import Protocol, AsyncIterator

from live_transcriber.domain.audio_frame import AudioPayload
from live_transcriber.domain.transcript import TranscriptFragment


class TranscriberError(Exception):
    pass


class TranscriberPort(Protocol):
    async def start_session(self) -> None: ...
    async def send_audio(self, payload: AudioPayload) -> None: ...
    def get_transcripts(self) -> AsyncIterator[TranscriptFragment]: ...
    async def close_session(self) -> None: ...
