from typing import Literal
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_GEMINI_MODEL = "gemini-2.5-flash-native-audio-preview-09-2025"
DEFAULT_SYSTEM_INSTRUCTION = (
    "You are an expert transcription service. Your only task is to accurately "
    "transcribe the user's speech. The user will speak in a mix of English and "
    "Arabic. Transcribe English in the English alphabet and Arabic in the Arabic "
    "script. Do not translate or add any commentary."
)


class LiveTranscriberConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="LIVE_TRANSCRIBER_")

    stt_engine: Literal["gemini", "deepgram"] = "gemini"

    gemini_api_key_file: str = ""
    gemini_model: str = DEFAULT_GEMINI_MODEL
    system_instruction: str = DEFAULT_SYSTEM_INSTRUCTION

    deepgram_api_key_file: str = ""
    deepgram_language: str = "multi"

    capture_device: str = ""
    sample_rate: int = 16000
    frame_size: int = 4096

    silence_timeout_ms: int = 900
    collapse_whitespace: bool = True
    separator: str = " "

    socket_path: str = "/tmp/live-transcriber.sock"

    @property
    def silence_timeout_seconds(self) -> float:
        return self.silence_timeout_ms / 1000

    def api_key_file(self) -> str:
        if self.stt_engine == "deepgram":
            return self.deepgram_api_key_file
        return self.gemini_api_key_file

    def read_secret(self, path: str) -> str:
        if not path:
            return ""
        try:
            with open(path) as f:
                return f.read().strip()
        except FileNotFoundError:
            return ""
