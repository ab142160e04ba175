import asyncio
import logging
from collections.abc import AsyncIterator

from google import genai
from google.genai import types

from live_transcriber.domain.audio_frame import AudioPayload
from live_transcriber.domain.transcript import TranscriptFragment
from live_transcriber.ports.transcriber import TranscriberError

logger = logging.getLogger(__name__)


class _SessionFailed:
    def __init__(self, error: BaseException) -> None:
        self.error = error


class GeminiLiveTranscriber:
    """Streams PCM to a Gemini Live session and yields input transcriptions.

    Each ``input_transcription`` chunk becomes a partial fragment. The
    service's ``turn_complete`` signal becomes an empty final fragment.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        system_instruction: str = "",
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._system_instruction = system_instruction
        self._session = None
        self._context_manager = None
        self._transcript_queue: asyncio.Queue[TranscriptFragment | _SessionFailed | None] = asyncio.Queue()
        self._session_active = False
        self._receiver_task: asyncio.Task | None = None

    async def start_session(self) -> None:
        if self._session_active:
            await self.close_session()

        self._transcript_queue = asyncio.Queue()
        client = genai.Client(api_key=self._api_key)
        config = types.LiveConnectConfig(
            response_modalities=[types.Modality.AUDIO],
            input_audio_transcription=types.AudioTranscriptionConfig(),
            system_instruction=self._system_instruction or None,
        )
        self._context_manager = client.aio.live.connect(model=self._model, config=config)
        try:
            self._session = await self._context_manager.__aenter__()
        except Exception as exc:
            self._context_manager = None
            raise TranscriberError(f"Could not open Gemini Live session: {exc}") from exc

        self._session_active = True
        self._receiver_task = asyncio.create_task(self._receive_loop())
        logger.info("Gemini Live session started (model=%s)", self._model)

    async def send_audio(self, payload: AudioPayload) -> None:
        if not (self._session and self._session_active):
            return
        try:
            await self._session.send_realtime_input(
                audio=types.Blob(data=payload.pcm_bytes, mime_type=payload.mime_type)
            )
        except Exception as exc:
            raise TranscriberError(f"Failed to send audio to Gemini: {exc}") from exc

    async def get_transcripts(self) -> AsyncIterator[TranscriptFragment]:
        while True:
            item = await self._transcript_queue.get()
            if item is None:
                return
            if isinstance(item, _SessionFailed):
                raise TranscriberError(str(item.error)) from item.error
            yield item

    async def close_session(self) -> None:
        self._session_active = False
        if self._receiver_task and not self._receiver_task.done():
            self._receiver_task.cancel()
            try:
                await self._receiver_task
            except asyncio.CancelledError:
                pass
        self._receiver_task = None

        if self._context_manager:
            try:
                await self._context_manager.__aexit__(None, None, None)
            except Exception:
                logger.warning("Error closing Gemini Live session", exc_info=True)
        self._context_manager = None
        self._session = None
        logger.info("Gemini Live session closed")

    async def _receive_loop(self) -> None:
        try:
            while self._session_active:
                async for message in self._session.receive():
                    await self._handle_message(message)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("Gemini Live error: %s", exc)
            await self._transcript_queue.put(_SessionFailed(exc))
            return
        await self._transcript_queue.put(None)

    async def _handle_message(self, message: types.LiveServerMessage) -> None:
        server_content = message.server_content
        if server_content is None:
            return

        transcription = server_content.input_transcription
        if transcription is not None and transcription.text:
            await self._transcript_queue.put(
                TranscriptFragment(text=transcription.text, is_final=False)
            )

        if server_content.turn_complete:
            await self._transcript_queue.put(TranscriptFragment(text="", is_final=True))
