import asyncio
import logging
from collections.abc import AsyncIterator

from deepgram import AsyncDeepgramClient
from deepgram.extensions.types.sockets.listen_v1_results_event import ListenV1ResultsEvent
from deepgram.listen.v1.socket_client import EventType

from live_transcriber.domain.audio_frame import AudioPayload
from live_transcriber.domain.transcript import TranscriptFragment
from live_transcriber.ports.transcriber import TranscriberError

logger = logging.getLogger(__name__)


class _SessionFailed:
    def __init__(self, error: object) -> None:
        self.error = error


class DeepgramStreamingTranscriber:
    """Deepgram live transcription mapped onto append-only fragments.

    Deepgram interim results are revised in place, so only finalized
    segments are forwarded: a segment with ``is_final`` becomes a partial
    fragment, and one that also carries ``speech_final`` closes the turn.
    """

    def __init__(self, api_key: str, sample_rate: int = 16000, language: str = "multi") -> None:
        self._api_key = api_key
        self._sample_rate = sample_rate
        self._language = language
        self._socket = None
        self._context_manager = None
        self._transcript_queue: asyncio.Queue[TranscriptFragment | _SessionFailed] = asyncio.Queue()
        self._session_active = False
        self._listener_task: asyncio.Task | None = None

    async def start_session(self) -> None:
        if self._session_active:
            await self.close_session()

        self._transcript_queue = asyncio.Queue()
        client = AsyncDeepgramClient(api_key=self._api_key)
        self._context_manager = client.listen.v1.connect(
            model="nova-2",
            language=self._language,
            encoding="linear16",
            sample_rate=str(self._sample_rate),
            channels="1",
            interim_results="true",
            endpointing="300",
            smart_format="true",
        )
        try:
            self._socket = await self._context_manager.__aenter__()
        except Exception as exc:
            self._context_manager = None
            raise TranscriberError(f"Could not open Deepgram session: {exc}") from exc

        self._socket.on(EventType.MESSAGE, self._on_message)
        self._socket.on(EventType.ERROR, self._on_error)
        self._listener_task = asyncio.create_task(self._socket.start_listening())
        self._session_active = True
        logger.info("Deepgram session started")

    async def send_audio(self, payload: AudioPayload) -> None:
        if not (self._socket and self._session_active):
            return
        try:
            await self._socket._send(payload.pcm_bytes)
        except Exception as exc:
            raise TranscriberError(f"Failed to send audio to Deepgram: {exc}") from exc

    async def get_transcripts(self) -> AsyncIterator[TranscriptFragment]:
        while True:
            item = await self._transcript_queue.get()
            if isinstance(item, _SessionFailed):
                raise TranscriberError(f"Deepgram error: {item.error}")
            yield item

    async def close_session(self) -> None:
        self._session_active = False
        if self._listener_task and not self._listener_task.done():
            self._listener_task.cancel()
            try:
                await self._listener_task
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.warning("Deepgram listener ended with an error", exc_info=True)
        self._listener_task = None

        if self._context_manager:
            try:
                await self._context_manager.__aexit__(None, None, None)
            except Exception:
                logger.warning("Error closing Deepgram session", exc_info=True)
        self._context_manager = None
        self._socket = None
        logger.info("Deepgram session closed")

    async def _on_message(self, message) -> None:
        if not isinstance(message, ListenV1ResultsEvent):
            return
        try:
            transcript = message.channel.alternatives[0].transcript
        except (IndexError, AttributeError):
            return

        if not message.is_final:
            if transcript:
                logger.debug("Deepgram interim: %s", transcript)
            return

        text = f" {transcript}" if transcript else ""
        await self._transcript_queue.put(
            TranscriptFragment(text=text, is_final=bool(message.speech_final))
        )

    async def _on_error(self, error) -> None:
        logger.error("Deepgram error: %s", error)
        await self._transcript_queue.put(_SessionFailed(error))
