"""Unit tests for BoundedExecutionContext."""

import pytest

from toolrunner.orchestration.context import BoundedExecutionContext


def test_never_exceeds_capacity_and_evicts_oldest_key():
    context = BoundedExecutionContext(max_entries=50)
    for i in range(60):
        context.update(f"key_{i:02d}", i)
        assert len(context) <= 50

    assert len(context) == 50
    assert "key_00" not in context
    assert "key_09" not in context
    assert "key_10" in context
    assert context.keys()[0] == "key_10"


def test_updating_existing_key_keeps_insertion_position():
    context = BoundedExecutionContext(max_entries=3)
    context.update("a", 1)
    context.update("b", 2)
    context.update("c", 3)
    context.update("a", 10)
    context.update("d", 4)

    assert "a" not in context
    assert context.keys() == ["b", "c", "d"]


def test_relevant_context_without_hint_returns_last_twenty():
    context = BoundedExecutionContext()
    for i in range(30):
        context.update(f"execution_{i}", i)

    relevant = context.relevant_context()
    assert len(relevant) == 20
    assert list(relevant)[0] == "execution_10"


def test_relevant_context_with_hint_filters_keys():
    context = BoundedExecutionContext()
    context.update("execution_1", {})
    context.update("last_calculator", 15)
    context.update("error_2", "boom")
    context.update("result_3", "ok")
    context.update("weather_lookup", "sunny")
    context.update("unrelated", 0)

    relevant = context.relevant_context("weather")
    assert set(relevant) == {"last_calculator", "error_2", "result_3", "weather_lookup"}


def test_relevant_context_with_hint_returns_at_most_ten():
    context = BoundedExecutionContext()
    for i in range(15):
        context.update(f"result_{i}", i)

    relevant = context.relevant_context("calculator")
    assert len(relevant) == 10
    assert list(relevant)[-1] == "result_14"


def test_invalid_capacity():
    with pytest.raises(ValueError):
        BoundedExecutionContext(max_entries=0)
