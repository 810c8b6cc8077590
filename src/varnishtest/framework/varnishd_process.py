"""varnishd subprocess lifecycle management.

The supervisor binds a management listener, spawns varnishd with `-M`
pointing at it, and accepts the single CLI connection varnishd makes back.
It owns the process and the working directory, and tears both down (with
the control channel) in terminate().

Architecture:
    Test code
        | VarnishInstance (url, adm, close)
        v
    Dispatcher  <-- CLI connection accepted on the -M listener
        ^
        | connects back after spawn
    varnishd -F -n <workdir> -a 127.0.0.1:0 -M 127.0.0.1:<port> ...
"""

import collections
import logging
import shutil
import socket
import subprocess
import sys
import threading
import time
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from ..errors import ProcessSpawnError, VarnishTestError
from .identity import InstanceIdentity

logger = logging.getLogger(__name__)

# Parameters every test instance runs with, before caller-supplied ones.
DEFAULT_PARAMETERS = [
    "auto_restart=off",
    "syslog_cli_traffic=off",
    "thread_pool_min=10",
    "debug=+vtc_mode",
    "vsl_mask=+Debug,+H2RxHdr,+H2RxBody",
    "h2_initial_window_size=1m",
    "h2_rx_window_low_water=64k",
]

CLIENT_LISTEN_ADDRESS = "127.0.0.1:0"
ACCEPT_POLL_INTERVAL = 0.1
OUTPUT_TAIL_LINES = 50


class VarnishdProcess:
    """Manages one varnishd child and its working directory."""

    def __init__(
        self,
        varnishd: str,
        identity: InstanceIdentity,
        base_dir,
        parameters: Sequence[Tuple[str, str]] = (),
        transport: str = "socket",
    ):
        """Create a supervisor; nothing is started until spawn().

        Args:
            varnishd: Path or name of the varnishd executable (a .py path is
                run with the current interpreter)
            identity: Identity naming the working directory
            base_dir: Directory the working directory is created in
            parameters: Extra (flag, value) pairs appended verbatim
            transport: "socket" to receive the CLI connection on a -M
                listener, "exec" to expose -T for varnishadm instead
        """
        if transport not in ("socket", "exec"):
            raise ValueError(f"Unknown transport: {transport!r}")

        self.varnishd = str(varnishd)
        self.identity = identity
        self.workdir: Path = identity.workdir(base_dir)
        self.parameters = list(parameters)
        self.transport = transport
        self.listener: Optional[socket.socket] = None
        self.proc: Optional[subprocess.Popen] = None
        self._output = collections.deque(maxlen=OUTPUT_TAIL_LINES)
        self._drain_thread: Optional[threading.Thread] = None
        self._terminated = False

    @property
    def management_address(self) -> str:
        """host:port of the -M listener."""
        if self.listener is None:
            raise ProcessSpawnError("Management listener is not bound")
        host, port = self.listener.getsockname()[:2]
        return f"{host}:{port}"

    def build_command(self) -> List[str]:
        if self.varnishd.endswith(".py"):
            cmd = [sys.executable, self.varnishd]
        else:
            cmd = [self.varnishd]

        cmd.extend([
            "-F",
            "-f", "",
            "-n", str(self.workdir),
            "-a", CLIENT_LISTEN_ADDRESS,
        ])
        for param in DEFAULT_PARAMETERS:
            cmd.extend(["-p", param])

        if self.transport == "socket":
            cmd.extend(["-M", self.management_address])
        else:
            cmd.extend(["-T", CLIENT_LISTEN_ADDRESS])

        for name, value in self.parameters:
            cmd.extend([name, value])
        return cmd

    def spawn(self):
        """Bind the management listener and start varnishd.

        Raises:
            ProcessSpawnError: If binding fails or the executable cannot run
        """
        if self.proc is not None:
            raise ProcessSpawnError("varnishd already spawned for this instance")

        if self.transport == "socket":
            try:
                self.listener = socket.create_server(("127.0.0.1", 0))
            except OSError as e:
                raise ProcessSpawnError(f"Failed to bind management listener: {e}") from e

        cmd = self.build_command()
        logger.info("[VarnishdProcess] Starting: %s", " ".join(cmd))

        try:
            self.proc = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
            )
        except OSError as e:
            self._close_listener()
            raise ProcessSpawnError(f"Failed to start {self.varnishd}: {e}") from e

        self._drain_thread = threading.Thread(target=self._drain_output, daemon=True)
        self._drain_thread.start()

    def _drain_output(self):
        """Continuously read child output so its pipe never fills up."""
        for raw in iter(self.proc.stdout.readline, b""):
            line = raw.decode("utf-8", errors="replace").rstrip("\n")
            self._output.append(line)
            logger.debug("[varnishd %s] %s", self.identity, line)
        self.proc.stdout.close()

    def output_tail(self) -> str:
        """Return the last lines varnishd printed."""
        if self._drain_thread is not None and self.proc is not None and self.proc.poll() is not None:
            self._drain_thread.join(timeout=1.0)
        return "\n".join(self._output)

    def accept(self, timeout: Optional[float] = None) -> socket.socket:
        """Accept the one CLI connection varnishd makes back to -M.

        Args:
            timeout: Seconds to wait, None to wait as long as the child lives

        Returns:
            The connected control socket

        Raises:
            ProcessSpawnError: If varnishd exits first, or the wait times out
        """
        if self.listener is None or self.proc is None:
            raise ProcessSpawnError("accept() called before spawn()")

        deadline = None if timeout is None else time.monotonic() + timeout
        self.listener.settimeout(ACCEPT_POLL_INTERVAL)
        try:
            while True:
                try:
                    conn, peer = self.listener.accept()
                    break
                except socket.timeout:
                    pass
                except OSError as e:
                    raise ProcessSpawnError(f"Accepting CLI connection failed: {e}") from e

                if self.proc.poll() is not None:
                    raise ProcessSpawnError(
                        f"varnishd exited prematurely (exit code: {self.proc.returncode})\n"
                        f"{self.output_tail()}"
                    )
                if deadline is not None and time.monotonic() > deadline:
                    raise ProcessSpawnError(
                        f"varnishd did not connect to {self.management_address} within {timeout}s\n"
                        f"{self.output_tail()}"
                    )
        finally:
            self._close_listener()

        conn.settimeout(None)
        logger.info("[VarnishdProcess] CLI connection from %s:%s", *peer[:2])
        return conn

    def is_running(self) -> bool:
        return self.proc is not None and self.proc.poll() is None

    def _close_listener(self):
        if self.listener is not None:
            try:
                self.listener.close()
            except OSError as e:
                logger.warning("[VarnishdProcess] Error closing listener: %s", e)
            self.listener = None

    def terminate(self, dispatcher=None, timeout: float = 5.0):
        """Tear down the instance; every step is attempted and none raises.

        Order: `stop` over the CLI (result ignored), close the channel, kill
        varnishd, remove the working directory. Calling it again is a no-op.
        """
        if self._terminated:
            return
        self._terminated = True

        if dispatcher is not None:
            try:
                dispatcher.send("stop")
            except (VarnishTestError, OSError) as e:
                logger.warning("[VarnishdProcess] stop command failed: %s", e)
            try:
                dispatcher.close()
            except (VarnishTestError, OSError) as e:
                logger.warning("[VarnishdProcess] Error closing CLI channel: %s", e)

        self._close_listener()

        if self.proc is not None:
            try:
                if self.proc.poll() is None:
                    self.proc.kill()
                self.proc.wait(timeout=timeout)
                logger.info("[VarnishdProcess] varnishd stopped (exit code: %s)", self.proc.returncode)
            except subprocess.TimeoutExpired:
                logger.warning("[VarnishdProcess] Timeout waiting for varnishd to exit after kill")
            except OSError as e:
                logger.warning("[VarnishdProcess] Failed to kill varnishd: %s", e)

        if self.workdir.exists():
            try:
                shutil.rmtree(self.workdir)
                logger.info("[VarnishdProcess] Removed %s", self.workdir)
            except OSError as e:
                logger.warning("[VarnishdProcess] Failed to remove %s: %s", self.workdir, e)
