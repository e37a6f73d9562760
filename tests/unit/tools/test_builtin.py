"""Tests for the built-in math.eval and weather.lookup tools."""

from __future__ import annotations

import pytest

from ragcore.tools.builtin import (
    evaluate_expression,
    math_eval,
    register_builtin_tools,
    weather_lookup,
)
from ragcore.tools.registry import ToolRegistry

UNSAFE = (
    "Error: Invalid or unsafe mathematical expression. "
    "Only basic arithmetic operations are allowed."
)


# ------------------------------------------------------------------
# math.eval
# ------------------------------------------------------------------


def test_math_eval_formats_result():
    assert math_eval({"expression": "2 + 3 * 4"}) == "Result: 2 + 3 * 4 = 14.000000"


@pytest.mark.parametrize(
    ("expression", "expected"),
    [("(1 + 2) * 3", 9.0), ("-4 / 2", -2.0), ("7 // 2", 3.0), ("7 % 4", 3.0), ("2 ** 10", 1024.0), ("1.5 * 2", 3.0)],
)
def test_evaluate_expression(expression, expected):
    assert evaluate_expression(expression) == expected


@pytest.mark.parametrize(
    "expression",
    [
        "__import__('os').system('ls')",
        "abs(-1)",
        "x + 1",
        "'a' * 3",
        "2 ** 1000",
        "1 +",
        "",
        "1" * 101,
    ],
)
def test_math_eval_rejects_unsafe(expression):
    assert math_eval({"expression": expression}) == UNSAFE


def test_math_eval_division_by_zero():
    assert math_eval({"expression": "1 / 0"}).startswith("Error evaluating expression:")


# ------------------------------------------------------------------
# weather.lookup
# ------------------------------------------------------------------


def test_weather_is_deterministic():
    args = {"city": "London", "date": "2024-07-01"}
    assert weather_lookup(args) == weather_lookup(args)


def test_weather_report_shape():
    report = weather_lookup({"city": "Tokyo", "date": "2024-01-15"})
    assert report.startswith("Weather for Tokyo on 2024-01-15: Temperature: ")
    for field in ("°C", "Condition: ", "Humidity: ", "Wind: ", "km/h"):
        assert field in report


def test_weather_differs_by_date():
    reports = {weather_lookup({"city": "Paris", "date": f"2024-03-{d:02d}"}) for d in range(1, 11)}
    assert len(reports) > 1


def test_weather_invalid_date():
    assert (
        weather_lookup({"city": "Oslo", "date": "01/02/2024"})
        == "Invalid date format. Please use YYYY-MM-DD format."
    )


def test_weather_missing_city():
    assert weather_lookup({"date": "2024-01-01"}) == "Missing required argument 'city'."


# ------------------------------------------------------------------
# Registration
# ------------------------------------------------------------------


def test_register_builtin_tools():
    registry = register_builtin_tools(ToolRegistry())
    assert [t.name for t in registry.list_tools()] == ["math.eval", "url.summary", "weather.lookup"]


@pytest.mark.asyncio
async def test_math_tool_through_registry():
    registry = register_builtin_tools(ToolRegistry())
    assert await registry.invoke("math.eval", '{"expression": "6 * 7"}') == "Result: 6 * 7 = 42.000000"
