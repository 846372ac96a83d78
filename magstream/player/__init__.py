"""External media player integration."""

from __future__ import annotations

from magstream.player.launcher import BrowserLaunched, PlayerLauncher, PlayerProcess

__all__ = ["BrowserLaunched", "PlayerLauncher", "PlayerProcess"]
