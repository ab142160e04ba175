import logging
import re

RESET = "\033[0m"
DIM = "\033[2m"
BOLD = "\033[1m"
RED = "\033[31m"
GREEN = "\033[32m"
YELLOW = "\033[33m"
BLUE = "\033[34m"
MAGENTA = "\033[35m"
CYAN = "\033[36m"

LEVEL_TAGS = {
    logging.DEBUG: ("D", DIM),
    logging.INFO: ("I", GREEN),
    logging.WARNING: ("W", YELLOW),
    logging.ERROR: ("E", RED),
    logging.CRITICAL: ("C", RED + BOLD),
}

# Colour of a lifecycle line follows the state being entered.
STATE_COLORS = {
    "IDLE": DIM,
    "CONNECTING": YELLOW,
    "LISTENING": GREEN + BOLD,
    "STOPPING": YELLOW,
}

STATE_LINE = re.compile(r"^State: \w+ -> (?P<target>\w+)$")
ENGINE_LOGGERS = ("gemini_live_stt", "deepgram_stt")


def _style_message(record: logging.LogRecord, component: str, msg: str) -> str:
    if record.levelno >= logging.WARNING:
        return f"{LEVEL_TAGS.get(record.levelno, ('', ''))[1]}{msg}{RESET}"
    if record.levelno == logging.DEBUG:
        return f"{DIM}{msg}{RESET}"

    match = STATE_LINE.match(msg)
    if match:
        color = STATE_COLORS.get(match.group("target"), "")
        return f"{color}{msg}{RESET}"
    if msg.startswith("Transcript: "):
        label, _, text = msg.partition(" ")
        return f"{CYAN}{label}{RESET} {BOLD}{text}{RESET}"
    if msg.startswith("Listening stopped"):
        return f"{MAGENTA}{msg}{RESET}"
    if component in ENGINE_LOGGERS:
        return f"{BLUE}{msg}{RESET}"
    return msg


class ColoredFormatter(logging.Formatter):
    """One-line log records for the daemon's terminal.

    Layout is ``time tag component message`` with a single-letter level tag.
    Lifecycle transitions take the colour of the state they enter, committed
    transcript text is bold, and transcription-engine chatter is blue.
    """

    def format(self, record: logging.LogRecord) -> str:
        tag, tag_color = LEVEL_TAGS.get(record.levelno, ("?", ""))
        time = self.formatTime(record, self.datefmt)
        component = record.name.rpartition(".")[2]
        msg = _style_message(record, component, record.getMessage())

        formatted = f"{DIM}{time}{RESET} {tag_color}{tag}{RESET} {DIM}[{component}]{RESET} {msg}"
        if record.exc_info:
            formatted += "\n" + self.formatException(record.exc_info)
        return formatted
