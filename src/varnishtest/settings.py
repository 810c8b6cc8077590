"""Environment-backed defaults for varnishtest.

Explicit builder arguments always win; these properties are read at access
time, which keeps them testable via monkeypatch.
"""

import os
import tempfile
from typing import Optional

TRANSPORTS = ("socket", "exec")


def parse_seconds(raw_value: str) -> Optional[float]:
    """Parse a duration with an optional unit suffix.

    Supports plain numbers (seconds) and the suffixes "ms", "s", "m".
    Returns None if the value is empty, invalid, or non-positive.
    """
    raw_value = raw_value.strip()
    if not raw_value:
        return None
    try:
        value = float(raw_value)
        return value if value > 0 else None
    except ValueError:
        pass

    for suffix, multiplier in (("ms", 0.001), ("s", 1.0), ("m", 60.0)):
        if raw_value.endswith(suffix):
            try:
                value = float(raw_value[: -len(suffix)].strip()) * multiplier
            except ValueError:
                return None
            return value if value > 0 else None

    return None


class Settings:
    """Defaults for locating varnishd and pacing the startup sequence."""

    @property
    def varnishd(self) -> str:
        """Path or name of the varnishd executable. Default: varnishd"""
        return (os.getenv("VARNISHTEST_VARNISHD") or "").strip() or "varnishd"

    @property
    def varnishadm(self) -> str:
        """Path or name of varnishadm, used by the exec transport."""
        return (os.getenv("VARNISHTEST_VARNISHADM") or "").strip() or "varnishadm"

    @property
    def transport(self) -> str:
        """Control transport, "socket" (default) or "exec"."""
        raw = (os.getenv("VARNISHTEST_TRANSPORT") or "").strip().lower()
        return raw if raw in TRANSPORTS else "socket"

    @property
    def base_dir(self) -> str:
        """Directory that holds the per-instance working directories."""
        return (os.getenv("VARNISHTEST_TMPDIR") or "").strip() or tempfile.gettempdir()

    @property
    def poll_interval(self) -> float:
        """Delay between readiness polls. Default: 200ms"""
        return parse_seconds(os.getenv("VARNISHTEST_POLL_INTERVAL") or "") or 0.2

    @property
    def timeout(self) -> Optional[float]:
        """Overall startup deadline in seconds, None for no deadline."""
        return parse_seconds(os.getenv("VARNISHTEST_TIMEOUT") or "")


settings = Settings()
