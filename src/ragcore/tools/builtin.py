"""Built-in tools: math.eval and weather.lookup (url.summary lives in url_summary)."""

from __future__ import annotations

import ast
import hashlib
import operator
from datetime import date
from typing import Any

from ragcore.tools.registry import Tool, ToolRegistry
from ragcore.tools.url_summary import make_url_summary_tool

_MAX_EXPRESSION_CHARS = 100

_BINARY_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}
_UNARY_OPS = {ast.UAdd: operator.pos, ast.USub: operator.neg}

_UNSAFE_MESSAGE = (
    "Error: Invalid or unsafe mathematical expression. "
    "Only basic arithmetic operations are allowed."
)


# ------------------------------------------------------------------
# math.eval
# ------------------------------------------------------------------


def _eval_node(node: ast.AST) -> float:
    if isinstance(node, ast.Expression):
        return _eval_node(node.body)
    if isinstance(node, ast.Constant) and type(node.value) in (int, float):
        return float(node.value)
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
        left, right = _eval_node(node.left), _eval_node(node.right)
        if isinstance(node.op, ast.Pow) and abs(right) > 100:
            raise ValueError("exponent too large")
        return float(_BINARY_OPS[type(node.op)](left, right))
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return float(_UNARY_OPS[type(node.op)](_eval_node(node.operand)))
    raise ValueError(f"unsupported syntax: {type(node).__name__}")


def evaluate_expression(expression: str) -> float:
    """Evaluate an arithmetic expression without ``eval()``.

    Raises:
        ValueError: For anything other than numbers, + - * / // % ** and parentheses.
        ZeroDivisionError: On division by zero.
    """
    try:
        tree = ast.parse(expression, mode="eval")
    except SyntaxError as exc:
        raise ValueError(f"invalid expression: {exc.msg}") from exc
    return _eval_node(tree)


def math_eval(args: dict[str, Any]) -> str:
    expression = str(args.get("expression", "")).strip()
    if not expression or len(expression) > _MAX_EXPRESSION_CHARS:
        return _UNSAFE_MESSAGE
    try:
        result = evaluate_expression(expression)
    except ValueError:
        return _UNSAFE_MESSAGE
    except (ZeroDivisionError, OverflowError) as exc:
        return f"Error evaluating expression: {exc}"
    return f"Result: {expression} = {result:.6f}"


# ------------------------------------------------------------------
# weather.lookup
# ------------------------------------------------------------------

_BASE_TEMPERATURES = [
    (("london", "paris"), 15),
    (("tokyo", "seoul"), 18),
    (("moscow", "stockholm"), 5),
    (("sydney", "melbourne"), 20),
    (("new york", "chicago"), 12),
    (("miami", "los angeles"), 25),
]
_CONDITIONS = [
    "Clear skies",
    "Bright sunshine",
    "Partly cloudy",
    "Overcast",
    "Mostly cloudy",
    "Light rain",
    "Heavy rain",
    "Drizzle",
    "Light snow",
    "Thunderstorms",
]
_WIND_DIRECTIONS = ["N", "NE", "E", "SE", "S", "SW", "W", "NW"]


def _seasonal_adjustment(day: date) -> int:
    if 3 <= day.month <= 5:
        return 5
    if 6 <= day.month <= 8:
        return 15
    if 9 <= day.month <= 11:
        return 0
    return -10


def weather_lookup(args: dict[str, Any]) -> str:
    """Simulated weather report, stable for a given city and date."""
    city = str(args.get("city", "")).strip()
    date_str = str(args.get("date", "")).strip()
    if not city:
        return "Missing required argument 'city'."
    try:
        day = date.fromisoformat(date_str)
    except ValueError:
        return "Invalid date format. Please use YYYY-MM-DD format."

    lowered = city.lower()
    base = next((t for names, t in _BASE_TEMPERATURES if any(n in lowered for n in names)), 18)
    seed = hashlib.sha256(f"{lowered}|{day.isoformat()}".encode()).digest()

    temperature = base + _seasonal_adjustment(day) + (seed[0] % 21) - 10
    condition = _CONDITIONS[seed[1] % len(_CONDITIONS)]
    humidity = 30 + seed[2] % 61
    wind = 5 + seed[3] % 21
    direction = _WIND_DIRECTIONS[seed[4] % len(_WIND_DIRECTIONS)]

    return (
        f"Weather for {city} on {date_str}: Temperature: {temperature}°C, "
        f"Condition: {condition}, Humidity: {humidity}%, Wind: {wind} km/h {direction}"
    )


# ------------------------------------------------------------------
# Registration
# ------------------------------------------------------------------

MATH_TOOL = Tool(
    name="math.eval",
    description="Safely evaluate mathematical expressions.",
    parameters={
        "type": "object",
        "properties": {
            "expression": {
                "type": "string",
                "description": "The mathematical expression to evaluate (e.g. '2 + 3 * 4')",
            }
        },
        "required": ["expression"],
    },
    handler=math_eval,
)

WEATHER_TOOL = Tool(
    name="weather.lookup",
    description="Get weather information for a specific city and date.",
    parameters={
        "type": "object",
        "properties": {
            "city": {"type": "string", "description": "The city name to get weather for"},
            "date": {"type": "string", "description": "The date (YYYY-MM-DD format)"},
        },
        "required": ["city", "date"],
    },
    handler=weather_lookup,
)


def register_builtin_tools(registry: ToolRegistry, *, fetch_timeout: float = 30.0) -> ToolRegistry:
    """Register math.eval, weather.lookup and url.summary on *registry*."""
    registry.register(MATH_TOOL)
    registry.register(WEATHER_TOOL)
    registry.register(make_url_summary_tool(timeout=fetch_timeout))
    return registry
