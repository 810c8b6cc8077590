"""Command dispatch over the Varnish CLI.

A Dispatcher turns one command into one CliResponse. Two variants reach the
same command surface: SocketDispatcher speaks the framed protocol over the
control connection varnishd opened back to us, and ExecDispatcher (in
cli_mode) runs varnishadm once per command. The startup sequence and the
instance handle only ever see the Dispatcher interface.
"""

import logging
import socket
import threading
from abc import ABC, abstractmethod
from typing import Optional

from ..errors import ChannelError, CommandError, ProtocolError
from .cli_frame import CliReader, CliResponse, CliWriter

logger = logging.getLogger(__name__)


class Dispatcher(ABC):
    """One command in, one response out."""

    @abstractmethod
    def send(self, *words: str, body: Optional[str] = None) -> CliResponse:
        """Issue a command and return its response, whatever the status."""
        pass

    def expect_ok(self, *words: str, body: Optional[str] = None) -> CliResponse:
        """Issue a command that must succeed.

        Raises:
            CommandError: If the response status is not 200
        """
        response = self.send(*words, body=body)
        if not response.ok:
            raise CommandError(" ".join(words), response.status, response.body)
        return response

    def close(self):
        """Release the transport. Safe to call more than once."""
        pass


class SocketDispatcher(Dispatcher):
    """Dispatches commands over an already connected CLI socket.

    Requests and responses are strictly paired: the lock keeps a second
    caller from writing before the previous response has been read. A
    failure in the middle of an exchange leaves that pairing unknown, so it
    closes the dispatcher.
    """

    def __init__(self, sock: socket.socket, timeout: Optional[float] = None):
        self._sock = sock
        self._sock.settimeout(timeout)
        self._rfile = sock.makefile("rb", buffering=0)
        self._wfile = sock.makefile("wb")
        self.reader = CliReader(self._rfile)
        self.writer = CliWriter(self._wfile)
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def read_message(self) -> CliResponse:
        """Read one unsolicited message (the authentication challenge)."""
        with self._lock:
            if self._closed:
                raise ChannelError("CLI channel already closed")
            try:
                return self.reader.read_message()
            except (ChannelError, ProtocolError) as e:
                logger.warning("[SocketDispatcher] Closing channel after failed read: %s", e)
                self._release()
                raise

    def send(self, *words: str, body: Optional[str] = None) -> CliResponse:
        with self._lock:
            if self._closed:
                raise ChannelError("CLI channel already closed")
            logger.debug("[SocketDispatcher] > %s", " ".join(words))
            try:
                self.writer.write_command(words, body)
                response = self.reader.read_message()
            except (ChannelError, ProtocolError) as e:
                logger.warning("[SocketDispatcher] Closing channel after failed exchange: %s", e)
                self._release()
                raise
            logger.debug("[SocketDispatcher] < %d (%d bytes)", response.status, len(response.body))
            return response

    def close(self):
        with self._lock:
            self._release()

    def _release(self):
        # Caller holds the lock.
        if self._closed:
            return
        self._closed = True
        for f in (self._wfile, self._rfile):
            try:
                f.close()
            except OSError as e:
                logger.warning("[SocketDispatcher] Error closing stream: %s", e)
        try:
            self._sock.close()
        except OSError as e:
            logger.warning("[SocketDispatcher] Error closing socket: %s", e)
