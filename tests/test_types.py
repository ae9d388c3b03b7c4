"""Tests for _types module."""
import pytest

from idlecore._types import COMPARISONS, is_number, to_float, truthy


@pytest.mark.parametrize("value, expected", [(1, True), (2.5, True), (True, False), ("3", False), (None, False)])
def test_is_number(value, expected):
    assert is_number(value) is expected


def test_to_float():
    assert to_float(True) == 1.0
    assert to_float(False) == 0.0
    assert to_float(3) == 3.0
    with pytest.raises(TypeError):
        to_float("3")


def test_truthy():
    assert truthy(True)
    assert truthy(0.5)
    assert not truthy(0)
    with pytest.raises(TypeError):
        truthy("yes")


def test_comparisons():
    assert COMPARISONS[">="](5, 5)
    assert not COMPARISONS["<"](5, 5)
    assert COMPARISONS["!="](1, 2)
