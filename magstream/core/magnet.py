"""Magnet URI validation and parsing (BEP 9).

The descriptor is checked once at startup, before anything else is
constructed; parsing only extracts what is useful for logging and for
merging tracker lists.
"""

from __future__ import annotations

import base64
import urllib.parse
from dataclasses import dataclass, field

from magstream.utils.exceptions import DescriptorError

MAGNET_PREFIX = "magnet:?"


@dataclass(frozen=True)
class MagnetInfo:
    """Information extracted from a magnet link."""

    uri: str
    info_hash: bytes
    display_name: str | None
    trackers: list[str] = field(default_factory=list)

    @property
    def info_hash_hex(self) -> str:
        return self.info_hash.hex()


def _hex_or_base32_to_bytes(btih: str) -> bytes:
    """Decode btih which can be hex (40 chars) or base32 (32 chars)."""
    btih = btih.strip()
    try:
        if len(btih) == 40:
            return bytes.fromhex(btih)
        if len(btih) == 32:
            return base64.b32decode(btih.upper())
    except ValueError as e:
        msg = f"Invalid info-hash {btih!r}: {e}"
        raise DescriptorError(msg) from e
    msg = f"Info-hash must be 40 hex or 32 base32 characters, got {len(btih)}"
    raise DescriptorError(msg)


def validate_descriptor(uri: str) -> str:
    """Return ``uri`` unchanged if it carries the magnet scheme prefix."""
    if not isinstance(uri, str) or not uri.startswith(MAGNET_PREFIX):
        msg = "Invalid magnet URI"
        raise DescriptorError(msg, {"descriptor": uri})
    return uri


def parse_magnet(uri: str) -> MagnetInfo:
    """Parse a magnet URI and return `MagnetInfo`.

    Supports: xt=urn:btih:<hash>, dn, tr (multiple).
    """
    validate_descriptor(uri)
    qs = urllib.parse.parse_qs(urllib.parse.urlparse(uri).query)

    btih_value = None
    for xt in qs.get("xt", []):
        if xt.startswith("urn:btih:"):
            btih_value = xt.split("urn:btih:", 1)[1]
            break
    if not btih_value:
        msg = "Magnet URI missing xt=urn:btih"
        raise DescriptorError(msg, {"descriptor": uri})

    return MagnetInfo(
        uri=uri,
        info_hash=_hex_or_base32_to_bytes(btih_value),
        display_name=qs.get("dn", [None])[0],
        trackers=qs.get("tr", []),
    )
