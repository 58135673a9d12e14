"""
Formula handling for damage values and item-granted modifiers.

Two small languages appear in stored data:

* Damage values such as "str+2" or "@dex - 1": a sum of stat references and
  integer constants. These parse into a DamageFormula of explicit terms.
* Modifier grants such as "name=Tough&modifier=@rank*2": the numeric fields
  are arithmetic over @rank and the stat abbreviations. These are evaluated
  with a whitelisted AST walker; stored strings are never executed as code.
"""

import ast
import re
import operator
import logging
from typing import Any, Dict, List, Mapping, Optional, Union
from urllib.parse import unquote

from pydantic import BaseModel, Field

from .actor_state import STAT_ABBREVIATIONS, STAT_NAMES

logger = logging.getLogger(__name__)

_TERM_RE = re.compile(r"([+-]?)([^+-]+)")
_VARIABLE_RE = re.compile(r"@([A-Za-z_]\w*)")

EVALUATED_MODIFIER_FIELDS = ("boons", "banes", "modifier", "divide", "percent")


class FormulaTerm(BaseModel):
    """One signed term of a damage formula: a stat reference or a constant."""

    sign: int = 1
    stat: Optional[str] = None
    constant: int = 0


class DamageFormula(BaseModel):
    """A damage value as a sum of stat references and constants."""

    terms: List[FormulaTerm] = Field(default_factory=list)

    def evaluate(self, stats: Mapping[str, int]) -> int:
        total = 0
        for term in self.terms:
            amount = stats.get(term.stat, 0) if term.stat else term.constant
            total += term.sign * amount
        return total


def _stats_in(chunk: str) -> List[str]:
    if chunk in STAT_NAMES:
        return [chunk]
    return [full for abbr, full in STAT_ABBREVIATIONS.items() if abbr in chunk]


def parse_damage_formula(value: Union[str, int, float, None]) -> DamageFormula:
    """
    Parse a damage value into terms.

    Stat abbreviations (str, dex, spd, end, int, per, chr, det) or full stat
    names match case-insensitively, with or without a leading "@". Any other
    word raises ValueError.

    Examples:
        "str+2"   -> strength + 2
        "@Dex-1"  -> dexterity - 1
        6         -> 6
    """
    if value is None or value == "":
        return DamageFormula()
    if isinstance(value, (int, float)):
        return DamageFormula(terms=[FormulaTerm(constant=int(value))])

    text = str(value).lower().replace(" ", "").replace("@", "")
    terms: List[FormulaTerm] = []
    consumed = 0
    for match in _TERM_RE.finditer(text):
        if match.start() != consumed:
            raise ValueError(f"Malformed damage formula: {value!r}")
        consumed = match.end()

        sign = -1 if match.group(1) == "-" else 1
        chunk = match.group(2)
        if chunk.isdigit():
            terms.append(FormulaTerm(sign=sign, constant=int(chunk)))
            continue

        stats = _stats_in(chunk)
        if not stats:
            raise ValueError(f"Unknown term {chunk!r} in damage formula {value!r}")
        for stat in stats:
            terms.append(FormulaTerm(sign=sign, stat=stat))

        residual = re.sub(r"\D", "", chunk)
        if residual:
            terms.append(FormulaTerm(sign=sign, constant=int(residual)))

    if consumed != len(text):
        raise ValueError(f"Malformed damage formula: {value!r}")
    return DamageFormula(terms=terms)


class SafeArithmeticEvaluator:
    """Arithmetic-only expression evaluator built on AST parsing."""

    # Allowed node types for safe evaluation
    SAFE_NODES = {
        ast.Expression,
        ast.BinOp,
        ast.UnaryOp,
        ast.Name,
        ast.Load,
        ast.Constant,
        ast.Add,
        ast.Sub,
        ast.Mult,
        ast.Div,
        ast.FloorDiv,
        ast.Mod,
        ast.USub,
        ast.UAdd,
    }

    # Allowed operators
    OPERATORS = {
        ast.Add: operator.add,
        ast.Sub: operator.sub,
        ast.Mult: operator.mul,
        ast.Div: operator.truediv,
        ast.FloorDiv: operator.floordiv,
        ast.Mod: operator.mod,
        ast.USub: operator.neg,
        ast.UAdd: operator.pos,
    }

    @classmethod
    def evaluate(cls, expression: str, variables: Mapping[str, Union[int, float]]) -> Union[int, float]:
        """
        Evaluate an arithmetic expression over named variables.

        Raises:
            ValueError: If the expression is not plain arithmetic or names an
                unknown variable.
        """
        try:
            tree = ast.parse(expression.strip(), mode="eval")
        except SyntaxError as e:
            raise ValueError(f"Invalid expression {expression!r}: {e}") from e

        for node in ast.walk(tree):
            if type(node) not in cls.SAFE_NODES:
                raise ValueError(f"Unsafe node type: {type(node).__name__}")

        return cls._eval_node(tree.body, variables)

    @classmethod
    def _eval_node(cls, node: ast.AST, variables: Mapping[str, Union[int, float]]):
        if isinstance(node, ast.Constant):
            if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
                raise ValueError(f"Unsupported constant: {node.value!r}")
            return node.value
        if isinstance(node, ast.Name):
            if node.id not in variables:
                raise ValueError(f"Unknown variable: {node.id}")
            return variables[node.id]
        if isinstance(node, ast.UnaryOp):
            return cls.OPERATORS[type(node.op)](cls._eval_node(node.operand, variables))
        if isinstance(node, ast.BinOp):
            left = cls._eval_node(node.left, variables)
            right = cls._eval_node(node.right, variables)
            if isinstance(node.op, (ast.Div, ast.FloorDiv, ast.Mod)) and right == 0:
                raise ValueError("Division by zero in expression")
            return cls.OPERATORS[type(node.op)](left, right)
        raise ValueError(f"Unsupported node type: {type(node).__name__}")


def formula_variables(rank: int, stats: Mapping[str, int]) -> Dict[str, int]:
    """Variables available to modifier formulas: rank plus stat abbreviations."""
    variables = {"rank": rank}
    for abbr, full in STAT_ABBREVIATIONS.items():
        variables[abbr] = stats.get(full, 0)
        variables[full] = stats.get(full, 0)
    return variables


def evaluate_formula(value: str, variables: Mapping[str, Union[int, float]]) -> str:
    """
    Evaluate the numeric fields of a modifier token.

    "name=Tough&modifier=@rank*2" with rank 3 becomes "name=Tough&modifier=6".
    Non-numeric fields (name, description) pass through untouched.

    Raises:
        ValueError: If a numeric field is not valid arithmetic.
    """
    evaluated = []
    for pair in value.split("&"):
        if not pair:
            continue
        key, _, raw = pair.partition("=")
        if key in EVALUATED_MODIFIER_FIELDS and raw:
            expression = _VARIABLE_RE.sub(r"\1", unquote(raw))
            result = SafeArithmeticEvaluator.evaluate(expression, variables)
            raw = str(int(result))
            logger.debug(f"Modifier formula {key}={expression} -> {raw}")
        evaluated.append(f"{key}={raw}")
    return "&".join(evaluated)
