"""Varnish CLI message framing.

Responses on the control channel look like:

    <status> <length>\\n
    <length bytes of body>\\n

The status field is padded with spaces by varnishd, so the header is split
on whitespace rather than on a single space. Requests are plain command
lines; commands that carry a multi-line body (VCL source) use the heredoc
form:

    vcl.inline vcl1 << XXYYZZ
    <body>
    XXYYZZ
"""

import re
from dataclasses import dataclass
from enum import IntEnum
from typing import Iterable, Optional

from ..errors import ChannelError, ProtocolError

# varnishd writes a fixed 13-byte header; anything much longer is garbage.
MAX_HEADER_LEN = 64
READ_CHUNK = 4096
DEFAULT_HEREDOC_TOKEN = "XXYYZZ"

_NEEDS_QUOTING = re.compile(r'[\s"\\]')


class CliStatus(IntEnum):
    """Status codes used by the Varnish CLI (not HTTP codes)."""

    SYNTAX = 100
    UNKNOWN = 101
    UNIMPL = 102
    TOOFEW = 104
    TOOMANY = 105
    PARAM = 106
    AUTH = 107
    OK = 200
    TRUNCATED = 201
    CANT = 300
    COMMS = 400
    CLOSE = 500


@dataclass(frozen=True)
class CliResponse:
    """One framed response: status code plus raw body bytes."""

    status: int
    body: bytes

    @property
    def ok(self) -> bool:
        return self.status == CliStatus.OK

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


def parse_header(line: bytes):
    """Parse a "<status> <length>" header line into two ints.

    Raises:
        ProtocolError: If the line does not hold exactly two non-negative ints
    """
    fields = line.split()
    if len(fields) != 2:
        raise ProtocolError(f"Malformed CLI header: {line!r}")
    try:
        status = int(fields[0])
        length = int(fields[1])
    except ValueError:
        raise ProtocolError(f"Non-numeric CLI header: {line!r}")
    if status < 0 or length < 0:
        raise ProtocolError(f"Negative field in CLI header: {line!r}")
    return status, length


def quote_arg(word: str) -> str:
    """Quote a single command argument for the CLI tokenizer if needed."""
    if word and not _NEEDS_QUOTING.search(word):
        return word
    escaped = (
        word.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )
    return f'"{escaped}"'


def heredoc_token(body: str, token: str = DEFAULT_HEREDOC_TOKEN) -> str:
    """Return a heredoc terminator that does not occur as a line in body."""
    lines = set(body.splitlines())
    while token in lines:
        token += "Z"
    return token


def encode_command(words: Iterable[str], body: Optional[str] = None) -> bytes:
    """Encode a command line, optionally followed by a heredoc body."""
    words = list(words)
    if not words:
        raise ProtocolError("Cannot encode an empty command")
    line = " ".join(quote_arg(w) for w in words)
    if body is None:
        return (line + "\n").encode("utf-8")
    token = heredoc_token(body)
    return f"{line} << {token}\n{body}\n{token}\n".encode("utf-8")


class CliReader:
    """Reads framed CLI responses from a byte stream.

    The stream only needs a read(n) method. A single read may return fewer
    bytes than requested (a raw socket usually does), so both the header and
    the body are accumulated until complete.
    """

    def __init__(self, stream):
        self._stream = stream
        self._buffer = bytearray()

    def _fill(self):
        try:
            chunk = self._stream.read(READ_CHUNK)
        except OSError as e:
            raise ChannelError(f"CLI read failed: {e}") from e
        if not chunk:
            raise ChannelError("CLI channel closed by peer")
        self._buffer.extend(chunk)

    def _read_line(self) -> bytes:
        while True:
            idx = self._buffer.find(b"\n")
            if idx >= 0:
                line = bytes(self._buffer[:idx])
                del self._buffer[: idx + 1]
                return line
            if len(self._buffer) > MAX_HEADER_LEN:
                raise ProtocolError(
                    f"CLI header exceeds {MAX_HEADER_LEN} bytes without newline: "
                    f"{bytes(self._buffer[:MAX_HEADER_LEN])!r}"
                )
            try:
                self._fill()
            except ChannelError:
                if self._buffer:
                    raise ProtocolError(
                        f"CLI header truncated: {bytes(self._buffer)!r}"
                    )
                raise

    def _read_exact(self, size: int) -> bytes:
        while len(self._buffer) < size:
            self._fill()
        data = bytes(self._buffer[:size])
        del self._buffer[:size]
        return data

    def read_message(self) -> CliResponse:
        """Read one complete response.

        Raises:
            ProtocolError: If the header or trailing delimiter is malformed
            ChannelError: If the channel closes or fails mid-message
        """
        status, length = parse_header(self._read_line())
        payload = self._read_exact(length + 1)
        if payload[-1:] != b"\n":
            raise ProtocolError(
                f"CLI body of {length} bytes not followed by newline: {payload[-1:]!r}"
            )
        return CliResponse(status=status, body=payload[:length])


class CliWriter:
    """Writes command lines to a byte stream, one write per command."""

    def __init__(self, stream):
        self._stream = stream

    def write_command(self, words: Iterable[str], body: Optional[str] = None):
        data = encode_command(words, body)
        try:
            self._stream.write(data)
            self._stream.flush()
        except OSError as e:
            raise ChannelError(f"CLI write failed: {e}") from e
