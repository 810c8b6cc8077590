"""Exception hierarchy for varnishtest.

Every failure raised by the library derives from VarnishTestError, so a
caller can decide for itself whether a failed start should abort its own
process.
"""


class VarnishTestError(Exception):
    """Base class for all varnishtest errors."""
    pass


class ProtocolError(VarnishTestError):
    """Malformed CLI framing or an unexpected response shape."""
    pass


class ChannelError(VarnishTestError, IOError):
    """The control channel was closed or broke during a read or write."""
    pass


class AuthenticationError(VarnishTestError):
    """The CLI authentication handshake failed."""
    pass


class CommandError(VarnishTestError):
    """A CLI command that was expected to succeed returned another status."""

    def __init__(self, command: str, status: int, body: bytes):
        self.command = command
        self.status = status
        self.body = body
        text = body.decode("utf-8", errors="replace").strip()
        super().__init__(f"'{command}' failed with status {status}:\n{text}")


class ProcessSpawnError(VarnishTestError):
    """varnishd could not be started or exited before connecting back."""
    pass


class ReadinessError(VarnishTestError):
    """The child stopped, or polling failed, before it was serving."""
    pass
