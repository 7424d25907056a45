"""Request input validation helpers for udlgate.

These functions extract required identifiers from query parameters and
request bodies *independently* of any HTTP handler, so they can be
unit-tested in isolation. Each one either returns a typed value or raises
``BadRequest``; none of them touch the backing store.
"""

import json
import re
from collections.abc import Mapping

from udlgate.errors import BadRequest
from udlgate.storage.backend import CompletedPart

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MIN_PART_NUMBER = 1
MAX_PART_NUMBER = 10000

# Optional sign then ASCII digits. No underscores, padding or non-ASCII digits.
_INTEGER_RE = re.compile(r"[+-]?[0-9]+")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def require_param(params: Mapping[str, str], name: str) -> str:
    """Return a required string parameter.

    Args:
        params: Query parameters (or any string mapping).
        name: The parameter name.

    Returns:
        The parameter value.

    Raises:
        BadRequest: If the parameter is absent or empty.
    """
    value = params.get(name)
    if not value:
        raise BadRequest(f"Missing {name}")
    return value


def optional_param(params: Mapping[str, str], name: str) -> str | None:
    """Return an optional string parameter, or None when absent."""
    return params.get(name)


def require_int_param(params: Mapping[str, str], name: str) -> int:
    """Return a required base-10 integer parameter.

    Raises:
        BadRequest: ``Missing <name>`` if absent, ``Invalid <name>`` if the
            value is not a base-10 integer.
    """
    raw = require_param(params, name)
    if not _INTEGER_RE.fullmatch(raw):
        raise BadRequest(f"Invalid {name}")
    return int(raw)


def require_part_number(params: Mapping[str, str]) -> int:
    """Return the ``partNumber`` parameter, checked against the allowed range."""
    n = require_int_param(params, "partNumber")
    if n < MIN_PART_NUMBER or n > MAX_PART_NUMBER:
        raise BadRequest("Invalid partNumber")
    return n


def require_body(data: bytes) -> bytes:
    """Reject an empty request body.

    Raises:
        BadRequest: If ``data`` is empty.
    """
    if not data:
        raise BadRequest("No body")
    return data


def parse_parts(raw: bytes) -> list[CompletedPart]:
    """Parse and shape-check a completion manifest.

    The body must be a JSON array of objects, each with an integer
    ``partNumber`` and a string ``etag``. Whether those parts were actually
    uploaded is left to the backing store.

    Args:
        raw: The raw request body.

    Returns:
        The parts in the order supplied.

    Raises:
        BadRequest: ``Invalid parts`` for malformed input, ``No parts`` for an
            empty array.
    """
    try:
        parts = json.loads(raw) if raw else None
    except (ValueError, UnicodeDecodeError, RecursionError):
        raise BadRequest("Invalid parts")

    if not isinstance(parts, list):
        raise BadRequest("Invalid parts")

    result: list[CompletedPart] = []
    for part in parts:
        if not isinstance(part, dict):
            raise BadRequest("Invalid parts")
        number = part.get("partNumber")
        etag = part.get("etag")
        # bool is an int subclass; JSON true/false is not a part number
        if not isinstance(number, int) or isinstance(number, bool):
            raise BadRequest("Invalid parts")
        if not isinstance(etag, str):
            raise BadRequest("Invalid parts")
        result.append(CompletedPart(part_number=number, etag=etag))

    if not result:
        raise BadRequest("No parts")
    return result
