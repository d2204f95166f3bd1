"""Calculator tools: add, subtract, multiply, divide, square, sqrt."""

from __future__ import annotations

import math

from pydantic import BaseModel, ConfigDict, Field

from toolpipe.core.errors import ToolError
from toolpipe.core.types import ToolDescriptor
from toolpipe.observability.logging import get_logger

from .registry import ToolRegistry

INSTRUCTIONS = (
    "A calculator that can perform basic mathematical operations including addition, "
    "subtraction, multiplication, division, square, and square root."
)

_log = get_logger("toolpipe.calculator")


class _Args(BaseModel):
    model_config = ConfigDict(extra="forbid")


class AddArgs(_Args):
    a: float = Field(description="First number")
    b: float = Field(description="Second number")


class SubtractArgs(_Args):
    a: float = Field(description="Number to subtract from")
    b: float = Field(description="Number to subtract")


class MultiplyArgs(_Args):
    a: float = Field(description="First number")
    b: float = Field(description="Second number")


class DivideArgs(_Args):
    a: float = Field(description="Dividend")
    b: float = Field(description="Divisor")


class SquareArgs(_Args):
    a: float = Field(description="Number to square")


class SqrtArgs(_Args):
    a: float = Field(description="Number to find the square root of")


def format_number(value: float) -> str:
    """Render 42.0 as "42" and keep fractional values as-is."""

    if value.is_integer() and abs(value) < 1e16:
        return str(int(value))
    return repr(value)


def _check_finite(*values: float) -> None:
    for v in values:
        if math.isnan(v):
            raise ToolError("Invalid input: NaN values are not allowed")
        if math.isinf(v):
            raise ToolError("Invalid input: Infinite values are not allowed")


def _result(op: str, value: float, **operands: float) -> str:
    # Overflow (e.g. squaring 1e200) is reported like any other invalid result.
    _check_finite(value)
    _log.info("calc", op=op, result=value, **operands)
    return format_number(value)


def add(args: AddArgs) -> str:
    _check_finite(args.a, args.b)
    return _result("add", args.a + args.b, a=args.a, b=args.b)


def subtract(args: SubtractArgs) -> str:
    _check_finite(args.a, args.b)
    return _result("subtract", args.a - args.b, a=args.a, b=args.b)


def multiply(args: MultiplyArgs) -> str:
    _check_finite(args.a, args.b)
    return _result("multiply", args.a * args.b, a=args.a, b=args.b)


def divide(args: DivideArgs) -> str:
    _check_finite(args.a, args.b)
    if args.b == 0:
        _log.warning("calc_division_by_zero", a=args.a)
        raise ToolError("Division by zero is not allowed")
    return _result("divide", args.a / args.b, a=args.a, b=args.b)


def square(args: SquareArgs) -> str:
    _check_finite(args.a)
    return _result("square", args.a * args.a, a=args.a)


def sqrt(args: SqrtArgs) -> str:
    _check_finite(args.a)
    if args.a < 0:
        _log.warning("calc_negative_sqrt", a=args.a)
        raise ToolError(f"Cannot calculate square root of negative number: {format_number(args.a)}")
    return _result("sqrt", math.sqrt(args.a), a=args.a)


def build_calculator_registry() -> ToolRegistry:
    registry = ToolRegistry()
    registry.register(ToolDescriptor.from_model("add", "Add two numbers together", AddArgs), add, input_model=AddArgs)
    registry.register(
        ToolDescriptor.from_model("subtract", "Subtract second number from first number", SubtractArgs),
        subtract,
        input_model=SubtractArgs,
    )
    registry.register(
        ToolDescriptor.from_model("multiply", "Multiply two numbers together", MultiplyArgs),
        multiply,
        input_model=MultiplyArgs,
    )
    registry.register(
        ToolDescriptor.from_model("divide", "Divide first number by second number", DivideArgs),
        divide,
        input_model=DivideArgs,
    )
    registry.register(
        ToolDescriptor.from_model("square", "Calculate the square of a number", SquareArgs),
        square,
        input_model=SquareArgs,
    )
    registry.register(
        ToolDescriptor.from_model("sqrt", "Calculate the square root of a number", SqrtArgs),
        sqrt,
        input_model=SqrtArgs,
    )
    return registry
