"""Tests for first-occurrence error logging."""

import logging

import pytest

pytestmark = [pytest.mark.unit]

from magstream.utils.log_policy import ErrorCategory, ErrorLogPolicy, ReportState

LOGGER = "test.policy"


@pytest.fixture
def policy():
    return ErrorLogPolicy(logging.getLogger(LOGGER))


def _visible(caplog):
    return [r for r in caplog.records if r.name == LOGGER and r.levelno >= logging.INFO]


def test_first_occurrence_logged_then_suppressed(policy, caplog):
    caplog.set_level(logging.DEBUG, logger=LOGGER)

    assert policy.state(ErrorCategory.CLIENT_ABORT) is ReportState.QUIET
    assert policy.record(ErrorCategory.CLIENT_ABORT, ConnectionResetError("reset")) is True
    assert policy.state(ErrorCategory.CLIENT_ABORT) is ReportState.REPORTED
    for _ in range(5):
        assert policy.record(ErrorCategory.CLIENT_ABORT, "reset again") is False

    visible = _visible(caplog)
    assert len(visible) == 1
    assert visible[0].levelno == logging.INFO
    assert visible[0].getMessage() == "Stream hiccup (normal for seeking): reset"
    assert policy.occurrences(ErrorCategory.CLIENT_ABORT) == 6
    assert any("Suppressed client_abort #6" in r.getMessage() for r in caplog.records)


def test_categories_are_independent(policy, caplog):
    caplog.set_level(logging.INFO, logger=LOGGER)
    policy.record(ErrorCategory.CLIENT_ABORT, "a")
    assert policy.record(ErrorCategory.STALL, "b") is True
    assert policy.record(ErrorCategory.READ_FAILURE, "c") is True

    levels = [r.levelno for r in _visible(caplog)]
    assert levels == [logging.INFO, logging.WARNING, logging.WARNING]
    assert policy.state(ErrorCategory.READ_FAILURE) is ReportState.REPORTED


def test_no_transition_back_to_quiet(policy):
    policy.record(ErrorCategory.STALL, "x")
    policy.record(ErrorCategory.STALL, "y")
    assert policy.state(ErrorCategory.STALL) is ReportState.REPORTED
