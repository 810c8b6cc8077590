"""Parsing of the CLI's machine-readable (-j) output.

JSON responses are an array whose first three slots are fixed:

    [<format version>, [<argv>...], <timestamp>, <payload>...]

The layout is positional and has changed between Varnish releases, so it is
validated against explicit models; a mismatch raises ProtocolError naming
the expected shape instead of failing on an index.
"""

import json
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from ..errors import ProtocolError

ENVELOPE_SHAPE = "[version:int, argv:list[str], timestamp:number, payload...]"


class JsonEnvelope(BaseModel):
    version: int
    argv: List[str]
    timestamp: float
    payload: List[Any]


class VclEntry(BaseModel):
    """One row of `vcl.list -j`."""

    model_config = ConfigDict(extra="allow")

    name: str
    status: str
    state: Optional[str] = None
    temperature: Optional[str] = None
    busy: int = 0


def parse_envelope(text: str) -> JsonEnvelope:
    """Validate the common JSON envelope and return it.

    Raises:
        ProtocolError: If the text is not JSON or not shaped like the envelope
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ProtocolError(f"CLI JSON output is not valid JSON: {e}") from e

    if not isinstance(data, list) or len(data) < 3:
        raise ProtocolError(f"CLI JSON output is not {ENVELOPE_SHAPE}: {text[:200]!r}")

    try:
        return JsonEnvelope(
            version=data[0],
            argv=data[1],
            timestamp=data[2],
            payload=data[3:],
        )
    except ValidationError as e:
        raise ProtocolError(f"CLI JSON output is not {ENVELOPE_SHAPE}: {e}") from e


def parse_vcl_list(text: str) -> List[VclEntry]:
    """Parse `vcl.list -j` output into VclEntry rows."""
    envelope = parse_envelope(text)
    try:
        return [VclEntry.model_validate(item) for item in envelope.payload]
    except ValidationError as e:
        raise ProtocolError(f"Unexpected vcl.list entry shape: {e}") from e
