"""Declarative builder for varnishd test instances.

Provides a fluent API for describing the instance (VCL, backends, runtime
parameters) and starts it with a single call.

Example:
    varnish = (VarnishTest()
        .backend("svr", backend_url)
        .vcl_string('''
            sub vcl_recv {
                set req.backend_hint = svr;
            }
        ''')
        .start())

    with varnish:
        resp = httpx.get(varnish.url + "/")
        # automatic cleanup on exit
"""

from pathlib import Path
from typing import List, Optional, Tuple

from ..settings import TRANSPORTS, settings
from .identity import InstanceIdentity
from .instance import VarnishInstance
from .orchestrator import StartupConfig, start_instance
from .vcl import VCL40, VCL41, BackendSpec, render_vcl


class VarnishTest:
    """Builder for a VarnishInstance.

    Unset options fall back to the environment (see varnishtest.settings).
    Each builder can be started once per identity; without an explicit
    identity every start() gets a fresh one.
    """

    def __init__(self):
        self._vcl_is_file = False
        self._vcl = ""
        self._vcl_version = VCL41
        self._parameters: List[Tuple[str, str]] = []
        self._backends: List[BackendSpec] = []
        self._identity: Optional[InstanceIdentity] = None
        self._transport: Optional[str] = None
        self._varnishd: Optional[str] = None
        self._varnishadm: Optional[str] = None
        self._base_dir: Optional[str] = None
        self._timeout: Optional[float] = None

    def vcl_string(self, vcl: str) -> "VarnishTest":
        """Use vcl as the VCL body; backends and version header are prepended."""
        self._vcl_is_file = False
        self._vcl = vcl
        return self

    def vcl_file(self, path) -> "VarnishTest":
        """Load VCL from a file with vcl.load; backends and header are not added."""
        self._vcl_is_file = True
        self._vcl = str(path)
        return self

    def vcl41(self) -> "VarnishTest":
        self._vcl_version = VCL41
        return self

    def vcl40(self) -> "VarnishTest":
        self._vcl_version = VCL40
        return self

    def no_vcl_version(self) -> "VarnishTest":
        """Omit the version header, for VCL bodies that carry their own."""
        self._vcl_version = ""
        return self

    def parameter(self, name: str, value: str) -> "VarnishTest":
        """Append a (flag, value) pair to the varnishd command line verbatim.

        Example: .parameter("-p", "default_ttl=5")
        """
        self._parameters.append((name, value))
        return self

    def backend(self, name: str, url: str) -> "VarnishTest":
        """Declare a backend named name pointing at url.

        Raises:
            ValueError: If the URL has no host or the name is already used
        """
        if any(b.name == name for b in self._backends):
            raise ValueError(f"Backend name '{name}' already used.")
        self._backends.append(BackendSpec.from_url(name, url))
        return self

    def identity(self, identity: InstanceIdentity) -> "VarnishTest":
        self._identity = identity
        return self

    def transport(self, kind: str) -> "VarnishTest":
        """Select how CLI commands reach varnishd: "socket" or "exec"."""
        if kind not in TRANSPORTS:
            raise ValueError(f"Unknown transport {kind!r}, expected one of {TRANSPORTS}")
        self._transport = kind
        return self

    def varnishd(self, path) -> "VarnishTest":
        self._varnishd = str(path)
        return self

    def varnishadm(self, path) -> "VarnishTest":
        self._varnishadm = str(path)
        return self

    def base_dir(self, path) -> "VarnishTest":
        """Directory in which the instance working directory is created."""
        self._base_dir = str(path)
        return self

    def timeout(self, seconds: Optional[float]) -> "VarnishTest":
        """Deadline for each blocking startup step; None waits forever."""
        self._timeout = seconds
        return self

    @property
    def backends(self) -> List[BackendSpec]:
        return list(self._backends)

    def render_vcl(self) -> str:
        """The VCL text that start() would load inline."""
        return render_vcl(self._vcl_version, self._backends, self._vcl)

    def build_config(self) -> StartupConfig:
        if self._vcl_is_file:
            vcl = str(Path(self._vcl).resolve())
        else:
            vcl = self.render_vcl()

        return StartupConfig(
            varnishd=self._varnishd or settings.varnishd,
            varnishadm=self._varnishadm or settings.varnishadm,
            identity=self._identity or InstanceIdentity.new(),
            base_dir=self._base_dir or settings.base_dir,
            vcl=vcl,
            vcl_is_file=self._vcl_is_file,
            parameters=list(self._parameters),
            transport=self._transport or settings.transport,
            timeout=self._timeout if self._timeout is not None else settings.timeout,
            poll_interval=settings.poll_interval,
        )

    def start(self) -> VarnishInstance:
        """Spawn varnishd, load the VCL and wait until it serves.

        Raises:
            VarnishTestError: If any startup step fails; nothing is left running
        """
        return start_instance(self.build_config())
