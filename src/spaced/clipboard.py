"""Clipboard sink that pipes text into an external clipboard utility."""
from __future__ import annotations

import logging
import shutil
import subprocess
import sys
from abc import ABC, abstractmethod
from typing import Sequence, Tuple

logger = logging.getLogger(__name__)


class ClipboardError(Exception):
    """Raised when any step of a clipboard copy fails."""


class ClipboardChannel(ABC):
    """One copy operation: write the payload, close the input, wait for exit."""

    @abstractmethod
    def write(self, text: str) -> None:
        ...

    @abstractmethod
    def close(self) -> None:
        ...

    @abstractmethod
    def wait(self) -> None:
        ...


class ClipboardSink(ABC):
    @abstractmethod
    def open(self) -> ClipboardChannel:
        ...


class CommandClipboard(ClipboardSink):
    """Runs ``command`` and feeds the payload through its standard input."""

    def __init__(self, command: Sequence[str]):
        if not command:
            raise ValueError("clipboard command cannot be empty")
        self.command: Tuple[str, ...] = tuple(command)

    def open(self) -> ClipboardChannel:
        try:
            process = subprocess.Popen(self.command, stdin=subprocess.PIPE)
        except OSError as exc:
            raise ClipboardError(f"unable to start {self.command[0]}: {exc}") from exc
        return _ProcessChannel(process)


class _ProcessChannel(ClipboardChannel):
    def __init__(self, process: subprocess.Popen):
        self._process = process

    def write(self, text: str) -> None:
        try:
            self._process.stdin.write(text.encode("utf-8"))
        except (OSError, ValueError) as exc:
            raise ClipboardError(f"writing to clipboard failed: {exc}") from exc

    def close(self) -> None:
        try:
            self._process.stdin.close()
        except OSError as exc:
            raise ClipboardError(f"closing clipboard input failed: {exc}") from exc

    def wait(self) -> None:
        returncode = self._process.wait()
        if returncode != 0:
            raise ClipboardError(f"clipboard command exited with status {returncode}")


def default_clipboard_command() -> Tuple[str, ...]:
    """Pick the clipboard utility for the current platform."""

    if sys.platform == "darwin":
        return ("pbcopy",)
    if sys.platform.startswith("win"):
        return ("clip",)
    if shutil.which("xclip") is None and shutil.which("xsel") is not None:
        return ("xsel", "--clipboard", "--input")
    return ("xclip", "-selection", "clipboard")
