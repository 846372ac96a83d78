"""Session bootstrap and lifecycle control."""

from __future__ import annotations

from magstream.session.lifecycle import LifecycleController, SessionResources
from magstream.session.runner import StreamSession

__all__ = ["LifecycleController", "SessionResources", "StreamSession"]
