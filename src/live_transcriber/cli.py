import argparse
import asyncio
import logging
import os
import signal
import sys
from pathlib import Path

from live_transcriber.config import LiveTranscriberConfig
from live_transcriber.domain.session import TranscriptionSession
from live_transcriber.log_format import ColoredFormatter

ENV_FILE_PATH = Path.home() / ".config" / "live-transcriber" / "env"
CLIENT_COMMANDS = ("toggle", "status")


def _load_env_file(path: Path = ENV_FILE_PATH) -> None:
    if not path.exists():
        return
    with open(path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" not in line:
                continue
            key, _, value = line.partition("=")
            value = value.strip("'\"")
            if key not in os.environ:
                os.environ[key] = value


def _configure_logging(verbose: bool) -> None:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(ColoredFormatter(datefmt="%H:%M:%S"))
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, handlers=[handler])

    for noisy in ("websockets", "httpcore", "httpx", "google_genai"):
        logging.getLogger(noisy).setLevel(logging.INFO if verbose else logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Live speech transcription")
    parser.add_argument("--engine", choices=["gemini", "deepgram"], help="Speech-to-text engine")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    parser.add_argument(
        "--no-autostart",
        action="store_true",
        help="Wait for a toggle command before listening",
    )

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("toggle", help="Start or stop listening")
    subparsers.add_parser("status", help="Query listening state and transcript")
    return parser


def main() -> None:
    _load_env_file()
    args = build_parser().parse_args()
    _configure_logging(args.verbose)

    config = LiveTranscriberConfig()
    if args.engine:
        config.stt_engine = args.engine

    if args.command in CLIENT_COMMANDS:
        asyncio.run(_run_client_command(args, config))
    else:
        asyncio.run(_run_daemon(config, autostart=not args.no_autostart))


async def _run_client_command(args: argparse.Namespace, config: LiveTranscriberConfig) -> None:
    from live_transcriber.adapters.unix_control import UnixSocketControlClient

    client = UnixSocketControlClient(socket_path=config.socket_path)

    try:
        result = await client.send_command(args.command)
    except (ConnectionRefusedError, FileNotFoundError):
        print("Live transcriber is not running", file=sys.stderr)
        sys.exit(1)

    if args.command == "status" and result.get("transcript"):
        print(result["transcript"])
    print(f"state={result.get('state')} listening={result.get('listening')} error={result.get('error')}")


def session_status(session: TranscriptionSession) -> dict:
    return {
        "state": session.state.name,
        "listening": session.listening,
        "error": session.error_message,
        "transcript": session.snapshot.text.strip() or session.last_transcript,
    }


async def _run_daemon(config: LiveTranscriberConfig, autostart: bool = True) -> None:
    from live_transcriber.health import run_startup_checks, has_critical_failures
    from live_transcriber.factory import create_session

    results = run_startup_checks(config)
    if has_critical_failures(results):
        logging.error("Critical health check failures, aborting startup")
        sys.exit(1)

    session, display, control = create_session(config)

    shutdown_event = asyncio.Event()
    shutdown_triggered = False

    def handle_signal() -> None:
        nonlocal shutdown_triggered
        if shutdown_triggered:
            logging.warning("Forced exit")
            sys.exit(1)
        shutdown_triggered = True
        logging.info("Shutting down...")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_signal)

    await control.start()

    async def control_loop() -> None:
        async for cmd in control.commands():
            if cmd.action == "toggle":
                await session.toggle()
            elif cmd.action != "status":
                logging.warning("Unknown control action: %s", cmd.action)
            cmd.respond(session_status(session))

    control_task = asyncio.create_task(control_loop())
    if autostart:
        await session.start()

    try:
        await shutdown_event.wait()
    finally:
        control_task.cancel()
        try:
            await asyncio.wait_for(control_task, timeout=1.0)
        except (asyncio.CancelledError, asyncio.TimeoutError):
            pass
        transcript = await session.stop()
        display.finish()
        await control.stop()
        if transcript:
            logging.info("Final transcript: %s", transcript)
