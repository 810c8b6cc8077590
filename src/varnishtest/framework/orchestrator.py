"""Coordinates the startup sequence of a varnishd test instance.

spawn -> accept CLI connection -> authenticate -> load VCL -> vcl.use ->
start -> poll until running. With the exec transport the accept and
authentication steps are replaced by pinging through varnishadm.

Each step is fatal; anything acquired before a failure is torn down
before the error reaches the caller.
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from ..errors import ChannelError, ProcessSpawnError
from .auth import authenticate
from .cli_mode import ExecDispatcher
from .dispatcher import Dispatcher, SocketDispatcher
from .identity import InstanceIdentity
from .instance import VarnishInstance
from .readiness import DEFAULT_INTERVAL, ReadinessPoller
from .varnishd_process import VarnishdProcess

logger = logging.getLogger(__name__)

VCL_NAME = "vcl1"
CLI_POLL_INTERVAL = 0.1


@dataclass
class StartupConfig:
    """Everything the startup sequence needs, resolved from the builder."""

    varnishd: str
    varnishadm: str
    identity: InstanceIdentity
    base_dir: str
    vcl: str
    vcl_is_file: bool = False
    parameters: List[Tuple[str, str]] = field(default_factory=list)
    transport: str = "socket"
    timeout: Optional[float] = None
    poll_interval: float = DEFAULT_INTERVAL


def load_vcl(dispatcher: Dispatcher, vcl: str, is_file: bool):
    """Load VCL inline or from a path, then make it active."""
    if is_file:
        dispatcher.expect_ok("vcl.load", VCL_NAME, str(Path(vcl)))
    else:
        dispatcher.expect_ok("vcl.inline", VCL_NAME, body=vcl)
    dispatcher.expect_ok("vcl.use", VCL_NAME)


def wait_for_cli(dispatcher: Dispatcher, process: VarnishdProcess, timeout: Optional[float] = None):
    """Ping through varnishadm until the management interface answers.

    Raises:
        ProcessSpawnError: If varnishd exits first, or the wait times out
    """
    deadline = None if timeout is None else time.monotonic() + timeout
    while True:
        try:
            if dispatcher.send("ping").ok:
                return
        except ChannelError as e:
            logger.debug("[Orchestrator] ping failed: %s", e)

        if not process.is_running():
            raise ProcessSpawnError(
                f"varnishd exited before its CLI answered\n{process.output_tail()}"
            )
        if deadline is not None and time.monotonic() > deadline:
            raise ProcessSpawnError(
                f"varnishd CLI did not answer within {timeout}s\n{process.output_tail()}"
            )
        time.sleep(CLI_POLL_INTERVAL)


def _connect(config: StartupConfig, process: VarnishdProcess) -> Dispatcher:
    if config.transport == "exec":
        dispatcher = ExecDispatcher(config.varnishadm, process.workdir, timeout=config.timeout)
        wait_for_cli(dispatcher, process, timeout=config.timeout)
        return dispatcher

    conn = process.accept(timeout=config.timeout)
    dispatcher = SocketDispatcher(conn, timeout=config.timeout)
    try:
        authenticate(dispatcher, process.workdir)
    except Exception:
        dispatcher.close()
        raise
    return dispatcher


def start_instance(config: StartupConfig) -> VarnishInstance:
    """Run the full startup sequence.

    Returns:
        A VarnishInstance whose url is the resolved client address

    Raises:
        VarnishTestError: Subclass describing the first step that failed
    """
    process = VarnishdProcess(
        config.varnishd,
        config.identity,
        config.base_dir,
        parameters=config.parameters,
        transport=config.transport,
    )
    process.spawn()

    dispatcher = None
    try:
        dispatcher = _connect(config, process)
        load_vcl(dispatcher, config.vcl, config.vcl_is_file)
        dispatcher.expect_ok("start")

        poller = ReadinessPoller(
            dispatcher,
            interval=config.poll_interval,
            timeout=config.timeout,
        )
        url = poller.wait_ready()
    except BaseException:
        logger.warning("[Orchestrator] Startup of %s failed, tearing down", config.identity)
        process.terminate(dispatcher)
        raise

    return VarnishInstance(url, dispatcher, process)
