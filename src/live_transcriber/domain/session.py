import asyncio
import logging
from collections.abc import Callable

from live_transcriber.domain.audio_frame import encode_pcm_frame
from live_transcriber.domain.state import ListeningState, validate_transition
from live_transcriber.domain.transcript import TranscriptAssembler, TranscriptSnapshot
from live_transcriber.ports.audio import AudioCaptureError, AudioCapturePort
from live_transcriber.ports.transcriber import TranscriberError, TranscriberPort

logger = logging.getLogger(__name__)

MICROPHONE_ERROR_MESSAGE = (
    "Could not access the microphone. Please grant permission and try again."
)
SERVICE_ERROR_MESSAGE = (
    "An error occurred with the transcription service. Please check the logs."
)


class TranscriptionSession:
    """Owns one listening turn at a time and the resources it holds.

    Failures are terminal for the current turn. The session records a single
    user-visible message in ``error_message`` and stops; nothing is retried.
    """

    def __init__(
        self,
        capture: AudioCapturePort,
        transcriber: TranscriberPort,
        assembler: TranscriptAssembler,
        sample_rate: int = 16000,
        on_error: Callable[[str], None] | None = None,
    ) -> None:
        self._capture = capture
        self._transcriber = transcriber
        self._assembler = assembler
        self._sample_rate = sample_rate
        self._on_error = on_error

        self._state = ListeningState.IDLE
        self._error_message: str | None = None
        self._last_transcript = ""
        self._tasks: list[asyncio.Task] = []
        self._stop_task: asyncio.Task | None = None
        self._frames_sent = 0

    @property
    def state(self) -> ListeningState:
        return self._state

    @property
    def listening(self) -> bool:
        return self._state in (ListeningState.CONNECTING, ListeningState.LISTENING)

    @property
    def error_message(self) -> str | None:
        return self._error_message

    @property
    def last_transcript(self) -> str:
        return self._last_transcript

    @property
    def snapshot(self) -> TranscriptSnapshot:
        return self._assembler.snapshot

    @property
    def frames_sent(self) -> int:
        return self._frames_sent

    def _transition_to(self, target: ListeningState) -> None:
        validate_transition(self._state, target)
        logger.info("State: %s -> %s", self._state.name, target.name)
        self._state = target

    async def start(self) -> None:
        if self._state != ListeningState.IDLE:
            return

        self._transition_to(ListeningState.CONNECTING)
        self._error_message = None
        self._frames_sent = 0
        self._assembler.reset()

        try:
            await self._capture.start()
        except AudioCaptureError:
            logger.exception("Failed to start audio capture")
            self._report_error(MICROPHONE_ERROR_MESSAGE)
            if self._state == ListeningState.CONNECTING:
                self._transition_to(ListeningState.IDLE)
            return

        try:
            await self._transcriber.start_session()
        except TranscriberError:
            logger.exception("Failed to open transcription session")
            self._report_error(SERVICE_ERROR_MESSAGE)
            if self._state == ListeningState.CONNECTING:
                await self._capture.stop()
                self._transition_to(ListeningState.IDLE)
            return

        if self._state != ListeningState.CONNECTING:
            logger.info("Stop requested while connecting, discarding session")
            await self._transcriber.close_session()
            await self._capture.stop()
            return

        self._transition_to(ListeningState.LISTENING)
        self._tasks = [
            asyncio.create_task(self._audio_loop()),
            asyncio.create_task(self._transcript_loop()),
        ]

    async def stop(self) -> str:
        """Stop the current turn and return its transcript.

        Calls that overlap a stop in progress wait for it and get the same
        transcript.
        """
        if self._state == ListeningState.IDLE:
            return self._last_transcript
        if self._stop_task is None or self._stop_task.done():
            self._stop_task = asyncio.create_task(self._stop_turn())
        return await asyncio.shield(self._stop_task)

    async def _stop_turn(self) -> str:
        self._transition_to(ListeningState.STOPPING)

        current = asyncio.current_task()
        pending = [task for task in self._tasks if task is not current]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        self._tasks = []

        await self._transcriber.close_session()
        await self._capture.stop()

        self._last_transcript = self._assembler.stop()
        logger.info(
            "Listening stopped (%d frames sent, %d chars transcribed)",
            self._frames_sent,
            len(self._last_transcript),
        )
        self._transition_to(ListeningState.IDLE)
        return self._last_transcript

    async def toggle(self) -> bool:
        if self._state == ListeningState.IDLE:
            await self.start()
        else:
            await self.stop()
        return self.listening

    async def _audio_loop(self) -> None:
        try:
            async for frame in self._capture.read_frames():
                payload = encode_pcm_frame(frame, sample_rate=self._sample_rate)
                await self._transcriber.send_audio(payload)
                self._frames_sent += 1
        except AudioCaptureError:
            logger.exception("Audio capture failed")
            self._fail(MICROPHONE_ERROR_MESSAGE)
        except TranscriberError:
            logger.exception("Sending audio failed")
            self._fail(SERVICE_ERROR_MESSAGE)

    async def _transcript_loop(self) -> None:
        try:
            async for fragment in self._transcriber.get_transcripts():
                self._assembler.on_fragment(fragment)
        except TranscriberError:
            logger.exception("Transcription session error")
            self._fail(SERVICE_ERROR_MESSAGE)
            return

        logger.info("Transcription session closed by service")
        self._request_stop()

    def _fail(self, message: str) -> None:
        self._report_error(message)
        self._request_stop()

    def _report_error(self, message: str) -> None:
        if self._error_message is not None:
            return
        self._error_message = message
        if self._on_error:
            self._on_error(message)

    def _request_stop(self) -> None:
        if self._state != ListeningState.LISTENING:
            return
        if self._stop_task and not self._stop_task.done():
            return
        self._stop_task = asyncio.create_task(self._stop_turn())
