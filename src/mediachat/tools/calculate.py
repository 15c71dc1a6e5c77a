from __future__ import annotations

import math
import operator as op
from collections.abc import Callable
from typing import Literal

from pydantic import BaseModel, Field

from .registry import ToolDefinition

APPROVAL_THRESHOLD = 1000

OPERATORS: dict[str, Callable[[float, float], float]] = {
    "+": op.add,
    "-": op.sub,
    "*": op.mul,
    "/": op.truediv,
    # Truncated remainder: the result takes the sign of the dividend.
    "%": math.fmod,
}


class CalculateInput(BaseModel):
    a: int | float = Field(description="First number")
    b: int | float = Field(description="Second number")
    operator: Literal["+", "-", "*", "/", "%"] = Field(description="Arithmetic operator")


def _number(value: int | float) -> int | float:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def needs_approval(args: CalculateInput) -> bool:
    return abs(args.a) > APPROVAL_THRESHOLD or abs(args.b) > APPROVAL_THRESHOLD


def calculate(args: CalculateInput) -> dict[str, object]:
    a, b = _number(args.a), _number(args.b)
    if args.operator in ("/", "%") and b == 0:
        return {"error": "Division by zero"}
    return {
        "expression": f"{a} {args.operator} {b}",
        "result": _number(OPERATORS[args.operator](a, b)),
    }


def build_calculate_tool() -> ToolDefinition:
    return ToolDefinition(
        name="calculate",
        description=(
            "Perform a math calculation with two numbers. "
            "Requires user approval for large numbers."
        ),
        input_model=CalculateInput,
        needs_approval=needs_approval,
        execute=calculate,
    )
