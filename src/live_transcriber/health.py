import logging
from dataclasses import dataclass

import sounddevice as sd

from live_transcriber.config import LiveTranscriberConfig

logger = logging.getLogger(__name__)

CRITICAL_CHECKS = {"audio_device", "api_key"}


@dataclass
class HealthCheckResult:
    name: str
    passed: bool
    detail: str


def run_startup_checks(config: LiveTranscriberConfig) -> list[HealthCheckResult]:
    results = [
        _check_audio_device(config),
        _check_api_key(config),
        _check_frame_size(config),
    ]

    passed = sum(1 for r in results if r.passed)

    logger.info("Health check: %d/%d passed", passed, len(results))
    for result in results:
        level = logging.INFO if result.passed else logging.WARNING
        symbol = "OK" if result.passed else "FAIL"
        logger.log(level, "  [%s] %s: %s", symbol, result.name, result.detail)

    return results


def has_critical_failures(results: list[HealthCheckResult]) -> bool:
    return any(not r.passed and r.name in CRITICAL_CHECKS for r in results)


def _check_audio_device(config: LiveTranscriberConfig) -> HealthCheckResult:
    name = "audio_device"
    try:
        device_name = config.capture_device
        if device_name:
            for dev in sd.query_devices():
                if device_name.lower() in dev["name"].lower() and dev["max_input_channels"] > 0:
                    return HealthCheckResult(name=name, passed=True, detail=f"Device '{device_name}' found")

        try:
            default = sd.query_devices(kind="input")
        except sd.PortAudioError:
            return HealthCheckResult(name=name, passed=False, detail="No input devices available")

        if device_name:
            detail = f"'{device_name}' not in PortAudio (will use PIPEWIRE_NODE), default input: {default['name']}"
        else:
            detail = f"Default input: {default['name']}"
        return HealthCheckResult(name=name, passed=True, detail=detail)
    except Exception as exc:
        return HealthCheckResult(name=name, passed=False, detail=str(exc))


def _check_api_key(config: LiveTranscriberConfig) -> HealthCheckResult:
    name = "api_key"
    key_file = config.api_key_file()
    if not config.read_secret(key_file):
        return HealthCheckResult(
            name=name,
            passed=False,
            detail=f"Missing: {config.stt_engine} ({key_file or 'not configured'})",
        )
    return HealthCheckResult(name=name, passed=True, detail=f"{config.stt_engine} key loaded")


def _check_frame_size(config: LiveTranscriberConfig) -> HealthCheckResult:
    name = "frame_size"
    frame_ms = config.frame_size * 1000 / config.sample_rate
    if config.silence_timeout_ms <= frame_ms:
        return HealthCheckResult(
            name=name,
            passed=False,
            detail=f"Silence timeout {config.silence_timeout_ms}ms is not longer than one frame ({frame_ms:.0f}ms)",
        )
    return HealthCheckResult(
        name=name,
        passed=True,
        detail=f"{config.frame_size} samples per frame ({frame_ms:.0f}ms)",
    )
