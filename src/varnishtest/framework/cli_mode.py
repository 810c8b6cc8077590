"""varnishadm invocation: the exec-based Dispatcher variant.

Each command runs `varnishadm -n <workdir> <words...>` to completion.
varnishadm finds the management address and secret through the working
directory and authenticates on its own, so no handshake happens here.

varnishadm joins its arguments with spaces onto a single CLI line without
quoting them, so every word and the body are quoted here the same way the
socket variant quotes them. A body travels as one quoted argument instead
of a heredoc.
"""

import logging
import re
import subprocess
import sys
import threading
from pathlib import Path
from typing import List, Optional

from ..errors import ChannelError, ProcessSpawnError
from .cli_frame import CliResponse, CliStatus, quote_arg
from .dispatcher import Dispatcher

logger = logging.getLogger(__name__)

_FAILED_RE = re.compile(rb"Command failed with error code (\d+)\s*")


def parse_exit(returncode: int, stdout: bytes, stderr: bytes) -> CliResponse:
    """Map a finished varnishadm run onto a CliResponse.

    Exit status 0 means the CLI answered 200. Otherwise varnishadm prints
    the response body on stdout and "Command failed with error code N" on
    stderr; when that line is missing (connection trouble, bad options) the
    status is COMMS.
    """
    if returncode == 0:
        body = stdout[:-1] if stdout.endswith(b"\n") else stdout
        return CliResponse(status=CliStatus.OK, body=body)

    streams = [stdout, stderr]
    for i in (1, 0):
        match = _FAILED_RE.search(streams[i])
        if match:
            streams[i] = streams[i][: match.start()] + streams[i][match.end():]
            parts = [s.strip(b"\n") for s in streams]
            body = b"\n".join(p for p in parts if p)
            return CliResponse(status=int(match.group(1)), body=body)

    return CliResponse(status=CliStatus.COMMS, body=(stderr or stdout).strip(b"\n"))


class ExecDispatcher(Dispatcher):
    """Dispatches each command by running varnishadm against a workdir."""

    def __init__(self, varnishadm: str, workdir: Path, timeout: Optional[float] = None):
        self.varnishadm = varnishadm
        self.workdir = Path(workdir)
        self.timeout = timeout
        self._lock = threading.Lock()

    def build_command(self, words, body: Optional[str] = None) -> List[str]:
        if self.varnishadm.endswith(".py"):
            cmd = [sys.executable, self.varnishadm]
        else:
            cmd = [self.varnishadm]
        cmd.extend(["-n", str(self.workdir)])
        if self.timeout is not None:
            cmd.extend(["-t", str(max(1, int(self.timeout)))])
        cmd.extend(quote_arg(w) for w in words)
        if body is not None:
            cmd.append(quote_arg(body))
        return cmd

    def send(self, *words: str, body: Optional[str] = None) -> CliResponse:
        cmd = self.build_command(words, body)
        with self._lock:
            logger.debug("[ExecDispatcher] Running: %s %s", self.varnishadm, " ".join(words))
            try:
                result = subprocess.run(
                    cmd,
                    capture_output=True,
                    timeout=self.timeout,
                )
            except FileNotFoundError as e:
                raise ProcessSpawnError(f"varnishadm not found: {self.varnishadm}") from e
            except subprocess.TimeoutExpired as e:
                raise ChannelError(f"varnishadm timed out after {self.timeout}s: {' '.join(words)}") from e
        return parse_exit(result.returncode, result.stdout, result.stderr)
