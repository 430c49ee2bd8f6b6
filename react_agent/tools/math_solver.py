"""
Mathematical Expression Solver

Safely evaluates mathematical expressions using SymPy's parser.
Supports scientific calculator syntax including:
- Factorial notation: 5!
- Caret exponentiation: 2^16
- Degree notation: sin(30 degrees)
"""

import logging
import re
from typing import Union

from sympy import N
from sympy.parsing.sympy_parser import (
    parse_expr,
    standard_transformations,
    implicit_multiplication_application,
    convert_xor,
    factorial_notation,
)

from .registry import ParameterSpec, ToolSpec

logger = logging.getLogger(__name__)

# Transformations for scientific calculator syntax
TRANSFORMATIONS = (
    standard_transformations
    + (implicit_multiplication_application,)
    + (convert_xor,)  # 2^16 -> 2**16
    + (factorial_notation,)  # 5! -> factorial(5)
)


def preprocess_expression(expression: str) -> str:
    """
    Preprocess expression for SymPy compatibility.

    Handles:
        - Degree notation: sin(30 degrees) -> sin(30 * pi / 180)
        - ceil function: ceil(x) -> ceiling(x) (SymPy naming)
    """
    degree_pattern = r"(\d+(?:\.\d+)?)\s*(?:degrees?|deg)\b"
    expression = re.sub(degree_pattern, r"(\1 * pi / 180)", expression, flags=re.IGNORECASE)
    expression = re.sub(r"\bceil\b", "ceiling", expression)
    return expression


def calculate(expression: str) -> Union[int, float, complex]:
    """
    Evaluate a mathematical expression numerically.

    Args:
        expression: Mathematical expression as a string

    Returns:
        The numeric result; whole numbers come back as int

    Raises:
        ValueError: If the expression is empty or cannot be evaluated
    """
    if not expression or not expression.strip():
        raise ValueError("Expression is empty. Provide a math expression such as 2+2.")

    try:
        expr = parse_expr(
            preprocess_expression(expression),
            transformations=TRANSFORMATIONS,
            evaluate=True,
        )
        result = complex(N(expr))
    except SyntaxError as e:
        logger.debug("Syntax error parsing expression '%s': %s", expression, e)
        raise ValueError(f"Syntax error: {e}") from e
    except (TypeError, ValueError, ZeroDivisionError) as e:
        logger.debug("Could not evaluate '%s': %s", expression, e)
        raise ValueError(f"Cannot evaluate '{expression}': {e}") from e

    if result.imag != 0:
        return result

    real = result.real
    if real.is_integer():
        return int(real)
    return real


def format_result_for_llm(calc_result: dict) -> str:
    """Format a calculation result for LLM consumption."""
    return f"{calc_result['expression']} = {calc_result['result']}"


def _handle_calculate(params: dict) -> dict:
    expression = params["expression"]
    return {"expression": expression, "result": calculate(expression)}


def build_tool() -> ToolSpec:
    """Declare the calculate tool."""
    return ToolSpec(
        name="calculate",
        description="Perform mathematical calculations",
        parameters={
            "expression": ParameterSpec("string", "math expression like 2+2 or sqrt(16)"),
        },
        handler=_handle_calculate,
        formatter=format_result_for_llm,
    )
