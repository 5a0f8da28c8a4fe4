from __future__ import annotations

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import TextIO

from prompt_toolkit import PromptSession, print_formatted_text
from prompt_toolkit.formatted_text import FormattedText
from prompt_toolkit.input import create_input
from prompt_toolkit.styles import Style


LOGGER_NAME = "pimesh_installer"
LOG_FORMAT = "%(asctime)s - %(levelname)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
FALLBACK_LOG_NAME = "pimesh_install.log"
TTY_PATH = "/dev/tty"

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

APP_STYLE = Style.from_dict(
    {
        "info": "ansiblue",
        "success": "ansigreen",
        "warning": "ansiyellow bold",
        "error": "ansired",
        "debug": "ansicyan",
        "menu": "ansimagenta",
        "banner": "ansicyan bold",
        "plain": "",
    }
)


def configure_logging(log_path: Path) -> Path:
    """Point the installer logger at a fresh log file.

    The file is truncated on every run. If ``log_path`` cannot be opened the
    log goes to the working directory instead; the chosen path is returned.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    chosen = Path(log_path)
    try:
        handler = logging.FileHandler(chosen, mode="w", encoding="utf-8", errors="backslashreplace")
    except OSError:
        chosen = Path.cwd() / FALLBACK_LOG_NAME
        handler = logging.FileHandler(chosen, mode="w", encoding="utf-8", errors="backslashreplace")
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    logger.addHandler(handler)
    logger.info("PiMesh-1W Installer started at %s", datetime.now().strftime("%a %b %d %H:%M:%S %Y"))
    return chosen


class Console:
    """Severity-coded terminal output mirrored into the installer log."""

    def __init__(self, debug: bool = False, logger: logging.Logger | None = None) -> None:
        self.debug_enabled = debug
        self.logger = logger or logging.getLogger(LOGGER_NAME)

    def _emit(self, style: str, text: str) -> None:
        print_formatted_text(FormattedText([(f"class:{style}", text)]), style=APP_STYLE)

    def show(self, text: str, style: str = "plain") -> None:
        self._emit(style, text)

    def info(self, message: str) -> None:
        self._emit("info", f"ℹ️  {message}")
        self.logger.info(message)

    def success(self, message: str) -> None:
        self._emit("success", f"✅ {message}")
        self.logger.log(SUCCESS, message)

    def warning(self, message: str) -> None:
        self._emit("warning", f"⚠️  {message}")
        self.logger.warning(message)

    def error(self, message: str) -> None:
        self._emit("error", f"❌ Error: {message}")
        self.logger.error(message)

    def debug(self, message: str) -> None:
        if self.debug_enabled:
            self._emit("debug", f"🔍 DEBUG: {message}")
        self.logger.debug(message)


class TerminalPrompt:
    """Line input from the controlling terminal.

    When the installer itself arrives on stdin (``curl ... | bash`` style
    launches) stdin is not a terminal, so answers are read from /dev/tty.
    """

    def __init__(self, tty_path: str = TTY_PATH) -> None:
        self.tty_path = tty_path
        self._session: PromptSession | None = None
        self._tty: TextIO | None = None

    def _get_session(self) -> PromptSession:
        if self._session is None:
            if sys.stdin.isatty():
                self._session = PromptSession()
            else:
                self._tty = open(self.tty_path, "r", encoding="utf-8")
                self._session = PromptSession(input=create_input(stdin=self._tty))
        return self._session

    def __call__(self, message: str) -> str:
        return self._get_session().prompt(message)

    def close(self) -> None:
        if self._tty is not None:
            self._tty.close()
            self._tty = None
