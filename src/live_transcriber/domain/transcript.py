import asyncio
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum, auto

logger = logging.getLogger(__name__)

DEFAULT_SILENCE_TIMEOUT_SECONDS = 0.9
DEFAULT_SEPARATOR = " "

_REPEATED_BLANKS = re.compile(r"[ \t]{2,}")


@dataclass(frozen=True)
class TranscriptFragment:
    text: str
    is_final: bool = False


@dataclass(frozen=True)
class TranscriptSnapshot:
    finalized: str = ""
    in_progress: str = ""

    @property
    def text(self) -> str:
        return self.finalized + self.in_progress


class AssemblerPhase(Enum):
    COMMITTED = auto()
    ACCUMULATING = auto()


TranscriptListener = Callable[[TranscriptSnapshot], None]


class TranscriptAssembler:
    """Folds streamed transcript fragments into committed and tentative text.

    Partial fragments accumulate in ``in_progress``. They are committed to
    ``finalized`` when the service sends a final fragment, or when no
    fragment arrives for ``silence_timeout_seconds``. At most one silence
    timer is live; every cancel bumps a generation counter so a timer that
    wakes up after being superseded does nothing.

    Fragment handling is synchronous. Scheduling the silence timer requires a
    running event loop.
    """

    def __init__(
        self,
        silence_timeout_seconds: float = DEFAULT_SILENCE_TIMEOUT_SECONDS,
        separator: str = DEFAULT_SEPARATOR,
        collapse_whitespace: bool = True,
        listener: TranscriptListener | None = None,
    ) -> None:
        self._silence_timeout_seconds = silence_timeout_seconds
        self._separator = separator
        self._collapse_whitespace = collapse_whitespace
        self._listeners: list[TranscriptListener] = [listener] if listener else []

        self._finalized = ""
        self._in_progress = ""
        self._timer_generation = 0
        self._silence_task: asyncio.Task | None = None

    @property
    def finalized(self) -> str:
        return self._finalized

    @property
    def in_progress(self) -> str:
        return self._in_progress

    @property
    def snapshot(self) -> TranscriptSnapshot:
        return TranscriptSnapshot(finalized=self._finalized, in_progress=self._in_progress)

    @property
    def phase(self) -> AssemblerPhase:
        if self._in_progress:
            return AssemblerPhase.ACCUMULATING
        return AssemblerPhase.COMMITTED

    @property
    def has_pending_timer(self) -> bool:
        return self._silence_task is not None and not self._silence_task.done()

    def add_listener(self, listener: TranscriptListener) -> None:
        self._listeners.append(listener)

    def on_fragment(self, fragment: TranscriptFragment) -> None:
        before = self.snapshot

        if fragment.is_final:
            self._cancel_silence_flush()
            pending = _join_fragments(self._in_progress, fragment.text)
            self._in_progress = ""
            if pending.strip():
                self._commit(pending)
        else:
            if not fragment.text:
                return
            self._cancel_silence_flush()
            self._in_progress += fragment.text
            logger.debug("Transcript (interim): %s", self._in_progress)
            self._schedule_silence_flush()

        self._publish_if_changed(before)

    def on_silence_timeout(self) -> None:
        self._cancel_silence_flush()
        if not self._in_progress.strip():
            return

        before = self.snapshot
        logger.debug("Silence timeout, committing pending text")
        self._commit(self._in_progress)
        self._in_progress = ""
        self._publish_if_changed(before)

    def stop(self) -> str:
        """Flush pending text and return the session transcript.

        Both buffers are cleared afterwards without publishing, so a display
        keeps showing the last transcript until the next ``reset``. Calling
        ``stop`` again returns an empty string.
        """
        self._cancel_silence_flush()
        before = self.snapshot

        if self._in_progress.strip():
            self._commit(self._in_progress)
        self._in_progress = ""
        self._publish_if_changed(before)

        transcript = self._finalized.strip()
        self._finalized = ""
        return transcript

    def reset(self) -> None:
        self._cancel_silence_flush()
        self._finalized = ""
        self._in_progress = ""
        self._publish()

    def _commit(self, text: str) -> None:
        committed = text.strip()
        merged = self._finalized + committed + self._separator
        if self._collapse_whitespace:
            merged = _REPEATED_BLANKS.sub(" ", merged)
        self._finalized = merged
        logger.info("Transcript: %s", committed)

    def _schedule_silence_flush(self) -> None:
        self._cancel_silence_flush()
        self._silence_task = asyncio.create_task(
            self._silence_timer(self._timer_generation)
        )

    def _cancel_silence_flush(self) -> None:
        self._timer_generation += 1
        if self._silence_task and not self._silence_task.done():
            if self._silence_task is not asyncio.current_task():
                self._silence_task.cancel()
        self._silence_task = None

    async def _silence_timer(self, generation: int) -> None:
        try:
            await asyncio.sleep(self._silence_timeout_seconds)
        except asyncio.CancelledError:
            return
        if generation != self._timer_generation:
            logger.debug("Ignoring stale silence timer (generation=%d)", generation)
            return
        self.on_silence_timeout()

    def _publish_if_changed(self, before: TranscriptSnapshot) -> None:
        if self.snapshot != before:
            self._publish()

    def _publish(self) -> None:
        snapshot = self.snapshot
        for listener in self._listeners:
            listener(snapshot)


def _join_fragments(head: str, tail: str) -> str:
    if not head.strip():
        return tail
    if not tail.strip():
        return head
    if head[-1].isspace() or tail[0].isspace():
        return head + tail
    return head + " " + tail
