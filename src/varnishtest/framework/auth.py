"""Varnish CLI challenge-response authentication.

When varnishd connects back to the management address it first sends a
107 (AUTH) message whose body starts with a 32-byte challenge. The answer is

    sha256(challenge + "\\n" + secret + challenge + "\\n")

hex-encoded, sent as `auth <hex>`. The secret is the content of `_.secret`
inside the instance's working directory, which varnishd writes before it
connects.
"""

import hashlib
import logging
from pathlib import Path

from ..errors import AuthenticationError
from .cli_frame import CliStatus

logger = logging.getLogger(__name__)

NONCE_LEN = 32
SECRET_FILENAME = "_.secret"


def compute_auth_token(nonce: bytes, secret: bytes) -> str:
    """Return the lower-case hex authentication response for a challenge."""
    challenge = nonce[:NONCE_LEN]
    hasher = hashlib.sha256()
    hasher.update(challenge)
    hasher.update(b"\n")
    hasher.update(secret)
    hasher.update(challenge)
    hasher.update(b"\n")
    return hasher.hexdigest()


def read_secret(workdir: Path) -> bytes:
    """Read the shared secret varnishd left in its working directory.

    Raises:
        AuthenticationError: If the secret file cannot be read
    """
    path = Path(workdir) / SECRET_FILENAME
    try:
        return path.read_bytes()
    except OSError as e:
        raise AuthenticationError(f"Cannot read CLI secret {path}: {e}") from e


def authenticate(dispatcher, workdir: Path) -> None:
    """Run the handshake on a freshly accepted SocketDispatcher.

    Reads the challenge, answers it, and checks the answer was accepted.
    Nothing is sent unless the challenge is well formed.

    Raises:
        AuthenticationError: On a bad challenge, unreadable secret or rejection
    """
    challenge = dispatcher.read_message()
    if challenge.status != CliStatus.AUTH:
        raise AuthenticationError(
            f"Expected status {int(CliStatus.AUTH)} challenge, got {challenge.status}: "
            f"{challenge.text!r}"
        )
    if len(challenge.body) < NONCE_LEN:
        raise AuthenticationError(
            f"Challenge too short: {len(challenge.body)} bytes, need {NONCE_LEN}"
        )

    secret = read_secret(workdir)
    token = compute_auth_token(challenge.body, secret)

    response = dispatcher.send("auth", token)
    if not response.ok:
        raise AuthenticationError(
            f"Authentication rejected with status {response.status}: {response.text.strip()}"
        )
    logger.debug("[Auth] Authenticated CLI channel for %s", workdir)
