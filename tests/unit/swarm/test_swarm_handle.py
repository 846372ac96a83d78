"""Tests for the shared swarm handle callbacks."""

import pytest

pytestmark = [pytest.mark.unit]

from magstream.models import TargetFile
from magstream.utils.exceptions import SwarmError


def test_done_fires_once(memory_swarm_factory):
    swarm = memory_swarm_factory(b"abc")
    calls = []
    swarm.on_done(lambda: calls.append("done"))
    swarm.finish()
    swarm.finish()
    assert calls == ["done"]
    assert swarm.finished


def test_failing_callback_does_not_stop_others(memory_swarm_factory):
    swarm = memory_swarm_factory(b"abc")
    seen = []

    def broken(_error):
        raise RuntimeError("listener bug")

    swarm.on_error(broken)
    swarm.on_error(seen.append)
    error = SwarmError("tracker refused")
    swarm.fail(error)
    assert seen == [error]


def test_target_requires_selection(memory_swarm_factory):
    swarm = memory_swarm_factory(b"abc")
    with pytest.raises(SwarmError):
        _ = swarm.target
    target = TargetFile(index=0, name="a.mp4", length=3)
    swarm.select(target)
    assert swarm.target is target
