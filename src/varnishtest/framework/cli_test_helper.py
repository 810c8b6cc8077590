"""Helpers for tests that drive the CLI layers without a varnishd.

Provides a scripted Dispatcher, a response shorthand, a byte stream that
returns short reads, and a reader for the command log the fake varnishd
writes.
"""

from pathlib import Path
from typing import Iterable, List, Union

from .cli_frame import CliResponse
from .dispatcher import Dispatcher


class ScriptedDispatcher(Dispatcher):
    """Dispatcher that answers from a fixed script and records the calls.

    A scripted exception is raised instead of returned.
    """

    def __init__(self, responses: Iterable):
        self.responses = list(responses)
        self.calls = []
        self.closed = False

    def send(self, *words, body=None):
        self.calls.append((words, body))
        if not self.responses:
            raise AssertionError(f"Unscripted command: {words}")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def close(self):
        self.closed = True


def ok(body: Union[str, bytes] = b"") -> CliResponse:
    """A 200 response with the given body."""
    if isinstance(body, str):
        body = body.encode()
    return CliResponse(status=200, body=body)


class ChunkedStream:
    """Byte stream that hands out data in fixed pieces, like a slow socket."""

    def __init__(self, chunks: Iterable[bytes]):
        self.chunks = list(chunks)
        self.reads = 0

    def read(self, n: int) -> bytes:
        self.reads += 1
        if not self.chunks:
            return b""
        chunk = self.chunks.pop(0)
        if len(chunk) > n:
            self.chunks.insert(0, chunk[n:])
            chunk = chunk[:n]
        return chunk


def read_commands(path: Path) -> List[str]:
    """Command lines logged by the fake varnishd, oldest first."""
    if not path.exists():
        return []
    return path.read_text().splitlines()
