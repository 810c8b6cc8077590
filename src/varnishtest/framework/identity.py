"""Instance identity: the token naming an instance's working directory."""

import uuid
from dataclasses import dataclass
from pathlib import Path

WORKDIR_PREFIX = "varnishtest-py."


@dataclass(frozen=True)
class InstanceIdentity:
    """Unique token for one supervised varnishd run.

    Generated once before spawn and threaded through every component, so
    tests can inject a deterministic value instead of relying on ambient
    randomness.
    """

    token: str

    def __post_init__(self):
        if not self.token or "/" in self.token or self.token in (".", ".."):
            raise ValueError(f"Invalid instance identity token: {self.token!r}")

    @classmethod
    def new(cls) -> "InstanceIdentity":
        return cls(uuid.uuid4().hex)

    def workdir(self, base_dir) -> Path:
        """Working directory for this instance under base_dir."""
        return Path(base_dir) / f"{WORKDIR_PREFIX}{self.token}"

    def __str__(self) -> str:
        return self.token
