"""Run varnishd as a test fixture: spawn, authenticate, load VCL, serve."""

__version__ = "0.1.0"

from .errors import (
    AuthenticationError,
    ChannelError,
    CommandError,
    ProcessSpawnError,
    ProtocolError,
    ReadinessError,
    VarnishTestError,
)
from .framework import InstanceIdentity, VarnishInstance, VarnishTest

__all__ = [
    "VarnishTest",
    "VarnishInstance",
    "InstanceIdentity",
    "VarnishTestError",
    "ProtocolError",
    "ChannelError",
    "AuthenticationError",
    "CommandError",
    "ProcessSpawnError",
    "ReadinessError",
]
