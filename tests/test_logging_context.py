"""Tests for logging context propagation."""

import pytest

from market_alerts.logging.context import (
    clear_log_context,
    get_log_context,
    log_context,
    pop_log_context,
    push_log_context,
)


@pytest.fixture(autouse=True)
def clean_context():
    """Clear logging context before and after each test."""
    clear_log_context()
    yield
    clear_log_context()


def test_empty_context():
    """Test that context starts empty."""
    assert get_log_context() == {}


def test_push_and_pop():
    """Test pushing fields and restoring the previous context."""
    token = push_log_context(run_id="abc123", user_id="u-1")
    assert get_log_context() == {"run_id": "abc123", "user_id": "u-1"}
    pop_log_context(token)
    assert get_log_context() == {}


def test_nested_context():
    """Test nested pushes merge and pop in order."""
    outer = push_log_context(run_id="abc123")
    inner = push_log_context(recipient="a@example.com")
    assert get_log_context() == {"run_id": "abc123", "recipient": "a@example.com"}

    pop_log_context(inner)
    assert get_log_context() == {"run_id": "abc123"}
    pop_log_context(outer)
    assert get_log_context() == {}


def test_inner_value_overrides_outer():
    """Test that a nested push can shadow a field."""
    with log_context(user_id="outer"):
        with log_context(user_id="inner"):
            assert get_log_context()["user_id"] == "inner"
        assert get_log_context()["user_id"] == "outer"


def test_none_values_ignored():
    """Test that None fields are not added."""
    with log_context(run_id="abc123", recipient=None):
        assert get_log_context() == {"run_id": "abc123"}


def test_context_manager_restores_on_error():
    """Test that the scope is popped when the body raises."""
    with pytest.raises(RuntimeError):
        with log_context(run_id="abc123"):
            raise RuntimeError("boom")
    assert get_log_context() == {}


def test_get_returns_copy():
    """Test that callers cannot mutate the active context."""
    with log_context(run_id="abc123"):
        context = get_log_context()
        context["run_id"] = "changed"
        assert get_log_context()["run_id"] == "abc123"

