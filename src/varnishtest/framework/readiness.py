"""Readiness polling: wait until the child is serving, then find its address."""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from ..errors import ChannelError, ProtocolError, ReadinessError
from .dispatcher import Dispatcher

logger = logging.getLogger(__name__)

CHILD_RUNNING = "Child in state running"
CHILD_STOPPED = "Child in state stopped"
CHILD_STARTING = "Child in state starting"

DEFAULT_INTERVAL = 0.2


class ReadinessState(Enum):
    """Where the poller is in the startup of the child."""

    LOADING = "loading"
    RUNNING = "running"
    READY = "ready"
    FAILED = "failed"


@dataclass
class ReadinessResult:
    """Outcome of a readiness wait."""

    state: ReadinessState
    url: Optional[str] = None
    polls: int = 0
    error: Optional[str] = None

    def __str__(self) -> str:
        if self.state == ReadinessState.READY:
            return f"ready at {self.url} after {self.polls} polls"
        return f"{self.state.value} after {self.polls} polls: {self.error}"


def _status_text(body: bytes) -> str:
    text = body.decode("utf-8", errors="replace")
    # The exec transport prints a line terminator the framed reader strips.
    return text[:-1] if text.endswith("\n") else text


def parse_listen_address(text: str) -> str:
    """Turn a `debug.listen_address` line into a base URL.

    The response holds one line per listen socket, "<name> <address> <port>";
    the first line wins.

    Raises:
        ReadinessError: If the first line is not three fields with a numeric port
    """
    lines = text.strip().splitlines()
    fields = lines[0].split() if lines else []
    if len(fields) != 3:
        raise ReadinessError(f"Unexpected debug.listen_address response: {text!r}")

    _name, address, port = fields
    try:
        port_num = int(port)
    except ValueError:
        raise ReadinessError(f"Non-numeric port in debug.listen_address response: {text!r}")

    if ":" in address and not address.startswith("["):
        address = f"[{address}]"
    return f"http://{address}:{port_num}"


class ReadinessPoller:
    """Polls `status` until the child is running or has failed.

    There is no retry limit unless a timeout is given; sleep and clock are
    injectable so tests can drive the loop without waiting.
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        interval: float = DEFAULT_INTERVAL,
        timeout: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.dispatcher = dispatcher
        self.interval = interval
        self.timeout = timeout
        self._sleep = sleep
        self._clock = clock
        self.state = ReadinessState.LOADING

    def _fail(self, polls: int, error: str) -> ReadinessResult:
        self.state = ReadinessState.FAILED
        logger.warning("[ReadinessPoller] %s", error)
        return ReadinessResult(state=self.state, polls=polls, error=error)

    def wait(self) -> ReadinessResult:
        """Run the poll loop to a terminal state and return the result."""
        deadline = None if self.timeout is None else self._clock() + self.timeout
        polls = 0

        while True:
            polls += 1
            try:
                response = self.dispatcher.send("status")
            except (ChannelError, ProtocolError) as e:
                return self._fail(polls, f"status request failed: {e}")

            if not response.ok:
                return self._fail(
                    polls,
                    f"status request got a {response.status} response:\n{response.text}",
                )

            text = _status_text(response.body)
            if text == CHILD_STOPPED:
                return self._fail(polls, "Child stopped before running")

            if text == CHILD_RUNNING:
                return self._resolve(polls)

            if text == CHILD_STARTING:
                self.state = ReadinessState.RUNNING

            if deadline is not None and self._clock() >= deadline:
                return self._fail(
                    polls, f"child not running after {self.timeout}s (last status {text!r})"
                )
            self._sleep(self.interval)

    def _resolve(self, polls: int) -> ReadinessResult:
        try:
            response = self.dispatcher.send("debug.listen_address")
        except (ChannelError, ProtocolError) as e:
            return self._fail(polls, f"debug.listen_address request failed: {e}")
        if not response.ok:
            return self._fail(
                polls,
                f"debug.listen_address got a {response.status} response:\n{response.text}",
            )
        try:
            url = parse_listen_address(response.text)
        except ReadinessError as e:
            return self._fail(polls, str(e))

        self.state = ReadinessState.READY
        logger.info("[ReadinessPoller] Child running, listening on %s", url)
        return ReadinessResult(state=self.state, url=url, polls=polls)

    def wait_ready(self) -> str:
        """Like wait(), but return the URL or raise ReadinessError."""
        result = self.wait()
        if result.state != ReadinessState.READY:
            raise ReadinessError(result.error)
        return result.url
