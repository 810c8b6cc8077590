"""Core varnishd supervision framework."""

from .cli_frame import CliReader, CliResponse, CliStatus, CliWriter, encode_command
from .dispatcher import Dispatcher, SocketDispatcher
from .cli_mode import ExecDispatcher
from .identity import InstanceIdentity
from .instance import VarnishInstance
from .readiness import ReadinessPoller, ReadinessResult, ReadinessState
from .test_instance import VarnishTest
from .vcl import BackendSpec

__all__ = [
    "CliReader",
    "CliResponse",
    "CliStatus",
    "CliWriter",
    "encode_command",
    "Dispatcher",
    "SocketDispatcher",
    "ExecDispatcher",
    "InstanceIdentity",
    "VarnishInstance",
    "ReadinessPoller",
    "ReadinessResult",
    "ReadinessState",
    "VarnishTest",
    "BackendSpec",
]
