import logging

from live_transcriber.config import LiveTranscriberConfig
from live_transcriber.adapters.console_display import ConsoleTranscriptDisplay
from live_transcriber.adapters.sounddevice_audio import SounddeviceCapture
from live_transcriber.adapters.unix_control import UnixSocketControlServer
from live_transcriber.domain.session import TranscriptionSession
from live_transcriber.domain.transcript import TranscriptAssembler
from live_transcriber.ports.control import ControlPort
from live_transcriber.ports.transcriber import TranscriberPort

logger = logging.getLogger(__name__)


def create_capture(config: LiveTranscriberConfig) -> SounddeviceCapture:
    return SounddeviceCapture(
        device=config.capture_device or None,
        sample_rate=config.sample_rate,
        frame_size=config.frame_size,
    )


def create_transcriber(config: LiveTranscriberConfig, api_key: str) -> TranscriberPort:
    if config.stt_engine == "deepgram":
        from live_transcriber.adapters.deepgram_stt import DeepgramStreamingTranscriber

        return DeepgramStreamingTranscriber(
            api_key=api_key,
            sample_rate=config.sample_rate,
            language=config.deepgram_language,
        )
    from live_transcriber.adapters.gemini_live_stt import GeminiLiveTranscriber

    return GeminiLiveTranscriber(
        api_key=api_key,
        model=config.gemini_model,
        system_instruction=config.system_instruction,
    )


def create_assembler(
    config: LiveTranscriberConfig, display: ConsoleTranscriptDisplay | None = None
) -> TranscriptAssembler:
    return TranscriptAssembler(
        silence_timeout_seconds=config.silence_timeout_seconds,
        separator=config.separator,
        collapse_whitespace=config.collapse_whitespace,
        listener=display,
    )


def create_session(
    config: LiveTranscriberConfig,
) -> tuple[TranscriptionSession, ConsoleTranscriptDisplay, ControlPort]:
    api_key = config.read_secret(config.api_key_file())
    logger.debug("Using %s transcriber", config.stt_engine)

    display = ConsoleTranscriptDisplay()
    session = TranscriptionSession(
        capture=create_capture(config),
        transcriber=create_transcriber(config, api_key),
        assembler=create_assembler(config, display),
        sample_rate=config.sample_rate,
        on_error=display.show_error,
    )
    control = UnixSocketControlServer(socket_path=config.socket_path)
    return session, display, control
