"""
Delimited console events.

The console's output is one undifferentiated byte stream. Commands are
wrapped so the shell prints OSC 633 marker sequences around them (the same
escape family editors use for shell integration)::

    ESC ] 633 ; C ; <token> BEL                    command started
    ... output ...
    ESC ] 633 ; D ; <token> ; <exit> ; <cwd> BEL   command finished

MarkerParser turns the raw stream into CommandStarted / OutputChunk /
CommandFinished events. Markers may arrive split across reads.
"""

from __future__ import annotations

from dataclasses import dataclass

OSC_PREFIX = "\x1b]633;"
OSC_END = "\x07"


@dataclass(frozen=True)
class CommandStarted:
    token: str


@dataclass(frozen=True)
class OutputChunk:
    text: str


@dataclass(frozen=True)
class CommandFinished:
    token: str
    exit_code: int
    cwd: str


ConsoleEvent = CommandStarted | OutputChunk | CommandFinished


def start_marker_command(token: str) -> str:
    """Shell snippet that prints the start marker."""
    return f"printf '\\033]633;C;%s\\007' {token}"


def finish_marker_command(token: str, status_var: str) -> str:
    """Shell snippet that prints the finish marker with the exit status held in ``status_var``."""
    return f"printf '\\033]633;D;%s;%s;%s\\007' {token} \"${status_var}\" \"$PWD\""


class MarkerParser:
    """Incremental parser for the marker protocol."""

    def __init__(self):
        self._buffer = ""

    def feed(self, data: str) -> list[ConsoleEvent]:
        self._buffer += data
        events: list[ConsoleEvent] = []

        while self._buffer:
            idx = self._buffer.find(OSC_PREFIX)
            if idx < 0:
                keep = _partial_prefix_len(self._buffer)
                text = self._buffer[: len(self._buffer) - keep]
                self._buffer = self._buffer[len(self._buffer) - keep :]
                if text:
                    events.append(OutputChunk(text))
                break

            if idx > 0:
                events.append(OutputChunk(self._buffer[:idx]))
                self._buffer = self._buffer[idx:]

            end = self._buffer.find(OSC_END, len(OSC_PREFIX))
            if end < 0:
                break  # Wait for the rest of the marker

            body = self._buffer[len(OSC_PREFIX) : end]
            self._buffer = self._buffer[end + len(OSC_END) :]
            event = _parse_marker(body)
            if event is not None:
                events.append(event)

        return events

    def flush(self) -> list[ConsoleEvent]:
        """Return whatever is buffered as plain output (stream ended)."""
        if not self._buffer:
            return []
        text, self._buffer = self._buffer, ""
        return [OutputChunk(text)]


def _partial_prefix_len(text: str) -> int:
    """Length of the longest suffix of ``text`` that starts a marker."""
    for size in range(min(len(OSC_PREFIX) - 1, len(text)), 0, -1):
        if OSC_PREFIX.startswith(text[-size:]):
            return size
    return 0


def _parse_marker(body: str) -> ConsoleEvent | None:
    kind, _, rest = body.partition(";")
    if kind == "C":
        return CommandStarted(token=rest)
    if kind == "D":
        parts = rest.split(";", 2)
        if len(parts) != 3:
            return None
        token, code, cwd = parts
        try:
            exit_code = int(code)
        except ValueError:
            exit_code = -1
        return CommandFinished(token=token, exit_code=exit_code, cwd=cwd)
    return None
