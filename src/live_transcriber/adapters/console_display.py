import sys
from typing import TextIO

from live_transcriber.domain.transcript import TranscriptSnapshot
from live_transcriber.log_format import DIM, RED, RESET

CLEAR_LINE = "\r\033[K"


class ConsoleTranscriptDisplay:
    """Renders transcript snapshots to a terminal.

    On a TTY the tentative tail is redrawn dimmed after the committed text of
    the current line. Other streams only receive committed text.
    """

    def __init__(self, stream: TextIO | None = None, interactive: bool | None = None) -> None:
        self._stream = stream or sys.stdout
        if interactive is None:
            interactive = self._stream.isatty()
        self._interactive = interactive
        self._emitted = ""
        self._line_open = False

    def __call__(self, snapshot: TranscriptSnapshot) -> None:
        if not snapshot.text:
            self.finish()
            return

        finalized = snapshot.finalized
        if not finalized.startswith(self._emitted):
            self._end_line()
            self._emitted = ""

        if self._interactive:
            self._render_interactive(finalized, snapshot.in_progress)
        else:
            delta = finalized[len(self._emitted):]
            if delta:
                self._stream.write(delta)
                self._line_open = not delta.endswith("\n")
            self._emitted = finalized
        self._stream.flush()

    def show_error(self, message: str) -> None:
        self._end_line()
        if self._interactive:
            self._stream.write(f"{RED}{message}{RESET}\n")
        else:
            self._stream.write(f"{message}\n")
        self._stream.flush()

    def finish(self) -> None:
        self._end_line()
        self._emitted = ""
        self._stream.flush()

    def _render_interactive(self, finalized: str, in_progress: str) -> None:
        _, _, current_line = finalized.rpartition("\n")
        complete_lines = finalized[: len(finalized) - len(current_line)]
        new_lines = complete_lines[len(self._emitted):]

        output = CLEAR_LINE + new_lines + current_line
        if in_progress:
            output += f"{DIM}{in_progress}{RESET}"
        self._stream.write(output)
        self._emitted = complete_lines
        self._line_open = bool(current_line or in_progress)

    def _end_line(self) -> None:
        if self._line_open:
            self._stream.write("\n")
            self._line_open = False
