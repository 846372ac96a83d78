"""Swarm collaborators.

The libtorrent adapter is imported lazily by the session runner so the
rest of the package does not need the native bindings loaded.
"""

from __future__ import annotations

from magstream.swarm.base import SwarmHandle

__all__ = ["SwarmHandle"]
