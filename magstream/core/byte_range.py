"""HTTP ``Range`` header parsing.

Only single ``bytes=`` ranges are accepted. Anything else is rejected
with `RangeNotSatisfiableError` and answered 416 by the server.
"""

from __future__ import annotations

import re

from magstream.models import ByteRange
from magstream.utils.exceptions import RangeNotSatisfiableError

_RANGE_RE = re.compile(r"^\s*bytes\s*=\s*(\d*)\s*-\s*(\d*)\s*$", re.IGNORECASE)


def parse_range(header: str, length: int) -> ByteRange:
    """Parse ``bytes=<start>-[<end>]`` against a file of ``length`` bytes.

    ``end`` defaults to ``length - 1`` and is clamped to it. The suffix
    form ``bytes=-N`` selects the last ``N`` bytes.

    Raises:
        RangeNotSatisfiableError: malformed header or empty/out-of-file range

    """
    match = _RANGE_RE.match(header)
    if match is None:
        msg = "Malformed Range header"
        raise RangeNotSatisfiableError(msg, {"range": header})

    start_str, end_str = match.groups()
    if not start_str and not end_str:
        msg = "Range header has no bounds"
        raise RangeNotSatisfiableError(msg, {"range": header})

    if not start_str:
        suffix = int(end_str)
        if suffix == 0 or length == 0:
            msg = "Empty suffix range"
            raise RangeNotSatisfiableError(msg, {"range": header})
        return ByteRange(max(length - suffix, 0), length - 1)

    start = int(start_str)
    end = int(end_str) if end_str else length - 1
    if start >= length or start > end:
        msg = "Range outside target file"
        raise RangeNotSatisfiableError(msg, {"range": header, "length": length})
    return ByteRange(start, min(end, length - 1))
