"""Condition evaluation for `if`."""

import operator
from typing import Callable, Optional, Sequence
from dataclasses import dataclass
import structlog

from ..core.errors import InvalidExpressionError
from .values import to_float


logger = structlog.get_logger()


@dataclass(frozen=True)
class Operator:
    """Condition operator: token, precedence (higher binds tighter) and function."""
    token: str
    precedence: int
    func: Callable[..., bool]
    unary: bool = False


OPEN = "("
CLOSE = ")"

OPERATORS: dict[str, Operator] = {
    "-not": Operator("-not", 4, lambda a: a == 0.0, unary=True),
    "-eq": Operator("-eq", 3, operator.eq),
    "-ne": Operator("-ne", 3, operator.ne),
    "-lt": Operator("-lt", 3, operator.lt),
    "-gt": Operator("-gt", 3, operator.gt),
    "-le": Operator("-le", 3, operator.le),
    "-ge": Operator("-ge", 3, operator.ge),
    "-and": Operator("-and", 2, lambda a, b: a != 0.0 and b != 0.0),
    "-or": Operator("-or", 1, lambda a, b: a != 0.0 or b != 0.0),
}


class ConditionEvaluator:
    """
    Evaluates `if` conditions.

    Single left-to-right scan with an operator stack and an operand stack.
    Supports:
    - Numeric comparisons (-eq, -ne, -lt, -gt, -le, -ge)
    - Logical operators (-and, -or, -not)
    - Grouping with "(" and ")"

    Operands are floats; comparison and logical results are 0.0 or 1.0.
    """

    def __init__(self, max_depth: int = 32):
        self.max_depth = max_depth

    def evaluate(self, tokens: Sequence[str], verb: str = "if") -> bool:
        """
        Evaluate a condition.

        Args:
            tokens: Condition words
            verb: Verb name used in error messages

        Returns:
            True if the condition holds
        """
        ops: list[Optional[Operator]] = []   # None is the "(" sentinel
        values: list[float] = []
        expect_operand = True

        def fail(message: str) -> InvalidExpressionError:
            return InvalidExpressionError(f"{verb}: {message}", context={"condition": " ".join(tokens)})

        def push_op(op: Optional[Operator]) -> None:
            if len(ops) >= self.max_depth:
                raise fail("condition complexity exceeded")
            ops.append(op)

        def push_value(value: float) -> None:
            if len(values) >= self.max_depth:
                raise fail("condition complexity exceeded")
            values.append(value)

        def apply() -> None:
            op = ops.pop()
            arity = 1 if op.unary else 2
            if len(values) < arity:
                raise fail(f"missing value in operator {op.token}")
            args = values[-arity:]
            del values[-arity:]
            result = 1.0 if op.func(*args) else 0.0
            logger.debug("condition_step", op=op.token, args=args, result=result)
            values.append(result)

        for token in tokens:
            if token == OPEN:
                if not expect_operand:
                    raise fail(f"missing operator before '{token}'")
                push_op(None)
            elif token == CLOSE:
                if expect_operand:
                    raise fail(f"missing value before '{token}'")
                while ops and ops[-1] is not None:
                    apply()
                if not ops:
                    raise fail("unmatched parentheses")
                ops.pop()
            elif token in OPERATORS:
                op = OPERATORS[token]
                if op.unary:
                    if not expect_operand:
                        raise fail(f"missing operator before '{token}'")
                    push_op(op)
                    continue
                if expect_operand:
                    raise fail(f"missing value before '{token}'")
                while ops and ops[-1] is not None and ops[-1].precedence >= op.precedence:
                    apply()
                push_op(op)
                expect_operand = True
            else:
                value = to_float(token)
                if value is None:
                    raise fail(f"error parsing value '{token}'")
                if not expect_operand:
                    raise fail(f"missing operator before '{token}'")
                push_value(value)
                expect_operand = False

        if expect_operand:
            raise fail("missing value at end of condition")
        while ops:
            if ops[-1] is None:
                raise fail("unmatched parentheses")
            apply()
        if len(values) != 1:
            raise fail("invalid expression")
        return values[0] != 0.0
