"""The handle returned for a running varnishd instance."""

import logging
from pathlib import Path
from typing import List, Optional

from .cli_frame import CliResponse
from .cli_json import VclEntry, parse_vcl_list
from .dispatcher import Dispatcher
from .identity import InstanceIdentity
from .varnishd_process import VarnishdProcess

logger = logging.getLogger(__name__)


class VarnishInstance:
    """A started, serving varnishd.

    Attributes:
        url: Base URL of the client listener, "http://<addr>:<port>" with no
            trailing slash
        identity: Identity of the instance (names the working directory)

    Example:
        with VarnishTest().vcl_string(vcl).start() as varnish:
            httpx.get(varnish.url + "/test")
    """

    def __init__(self, url: str, dispatcher: Dispatcher, process: VarnishdProcess):
        self.url = url
        self._dispatcher = dispatcher
        self._process = process
        self._closed = False

    @property
    def identity(self) -> InstanceIdentity:
        return self._process.identity

    @property
    def workdir(self) -> Path:
        return self._process.workdir

    @property
    def closed(self) -> bool:
        return self._closed

    def adm(self, *words: str, body: Optional[str] = None) -> CliResponse:
        """Issue a CLI command and return the response, whatever its status."""
        return self._dispatcher.send(*words, body=body)

    def param_set(self, name: str, value: str) -> CliResponse:
        """Change a runtime parameter; raises CommandError if refused."""
        return self._dispatcher.expect_ok("param.set", name, value)

    def vcl_list(self) -> List[VclEntry]:
        """Loaded VCLs, from the JSON form of vcl.list."""
        response = self._dispatcher.expect_ok("vcl.list", "-j")
        return parse_vcl_list(response.text)

    def close(self):
        """Stop varnishd and remove its working directory.

        Best effort and idempotent: failures are logged, never raised.
        """
        if self._closed:
            return
        self._closed = True
        logger.info("[VarnishInstance] Closing %s", self.url)
        self._process.terminate(self._dispatcher)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
