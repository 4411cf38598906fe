from fractions import Fraction
from typing import List, Optional, Union
import re

import structlog

from fusion_agent.domain.errors import MathEvaluationError
from fusion_agent.domain.models.plugins import MathResult
from .base_plugin import BasePlugin

logger = structlog.get_logger(__name__)

_NUMBER = r"\d+(?:\.\d+)?"
_OPERAND = rf"(?:[-+]?\s*\(\s*)*[-+]?\s*{_NUMBER}(?:\s*\))*"
# Must not start inside a number or word
EXPRESSION_PATTERN = re.compile(rf"(?<![\w.)]){_OPERAND}(?:\s*[-+*/]\s*{_OPERAND})+")
# Characters that continue an expression past the matched span
_CONTINUATION = re.compile(r"[\w(]|\.\d")
_REST_OF_TOKEN = re.compile(r"\S*")

_SAFE_EXPRESSION = re.compile(r"^[0-9+\-*/(). ]+$")
_TOKEN = re.compile(rf"\s*({_NUMBER}|[-+*/()])")


class ArithmeticEvaluator:
    """Recursive-descent evaluator for + - * / over numbers and parentheses.

    Arithmetic is exact (fractions); integral results come back as int.
    Anything it cannot evaluate cleanly raises MathEvaluationError.
    """

    def evaluate(self, expression: str) -> Union[int, float]:
        if not expression.strip() or not _SAFE_EXPRESSION.match(expression):
            raise MathEvaluationError(f"Expression contains unsupported characters: {expression}")
        if expression.count("(") != expression.count(")"):
            raise MathEvaluationError(f"Unbalanced parentheses: {expression}")

        self._tokens = self._tokenize(expression)
        self._pos = 0

        value = self._expression()
        if self._pos != len(self._tokens):
            raise MathEvaluationError(f"Unexpected token '{self._tokens[self._pos]}' in: {expression}")

        if value.denominator == 1:
            return int(value)
        return float(value)

    def _tokenize(self, expression: str) -> List[str]:
        tokens = []
        pos = 0
        stripped = expression.rstrip()
        while pos < len(stripped):
            match = _TOKEN.match(stripped, pos)
            if match is None:
                raise MathEvaluationError(f"Malformed expression: {expression}")
            tokens.append(match.group(1))
            pos = match.end()
        return tokens

    def _peek(self) -> Optional[str]:
        return self._tokens[self._pos] if self._pos < len(self._tokens) else None

    def _advance(self) -> str:
        token = self._peek()
        if token is None:
            raise MathEvaluationError("Unexpected end of expression")
        self._pos += 1
        return token

    def _expression(self) -> Fraction:
        value = self._term()
        while self._peek() in ("+", "-"):
            if self._advance() == "+":
                value += self._term()
            else:
                value -= self._term()
        return value

    def _term(self) -> Fraction:
        value = self._factor()
        while self._peek() in ("*", "/"):
            operator = self._advance()
            operand = self._factor()
            if operator == "*":
                value *= operand
            elif operand == 0:
                raise MathEvaluationError("Division by zero")
            else:
                value /= operand
        return value

    def _factor(self) -> Fraction:
        token = self._advance()
        if token == "-":
            return -self._factor()
        if token == "+":
            return self._factor()
        if token == "(":
            value = self._expression()
            if self._advance() != ")":
                raise MathEvaluationError("Unbalanced parentheses")
            return value
        if token in (")", "*", "/"):
            raise MathEvaluationError(f"Unexpected token '{token}'")
        return Fraction(token)


class MathPlugin(BasePlugin):
    """Evaluates arithmetic expressions found in the message"""

    name = "math"
    description = "Evaluate arithmetic expressions using + - * / and parentheses"

    def can_handle(self, message: str) -> bool:
        return EXPRESSION_PATTERN.search(message) is not None

    def extract_input(self, message: str) -> Optional[str]:
        """The matched expression, extended to the end of the token when the
        message carries on with more operands (e.g. "(1+2)(3+4)") so that the
        evaluator rejects it instead of answering for a prefix.
        """

        match = EXPRESSION_PATTERN.search(message)
        if not match:
            return None

        expression = match.group(0)
        if _CONTINUATION.match(message, match.end()):
            expression += _REST_OF_TOKEN.match(message, match.end()).group(0)
        return expression.strip()

    async def run(self, plugin_input: str) -> MathResult:
        logger.info("Evaluating math expression", expression=plugin_input)

        result = ArithmeticEvaluator().evaluate(plugin_input)
        return MathResult(expression=re.sub(r"\s+", "", plugin_input), result=result)
