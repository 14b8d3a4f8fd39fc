# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Deterministic answers that need no model call.

Some utterances have exactly one right answer: simple arithmetic,
greetings, "what can you do?". Answering them here skips the quota
check, the conversation context and the model entirely.

Arithmetic is evaluated over a parsed expression tree restricted to
numbers, parentheses and the basic operators; nothing is ever passed to
``eval``.

Example:
    >>> classifier = FastPathClassifier()
    >>> classifier.classify("what is 5 + 3?").text
    '5 + 3 = 8'
"""

import ast
import logging
import math
import operator
import re
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)

MAX_EXPRESSION_LENGTH = 120
MAX_EXPONENT = 64
MAX_MAGNITUDE = 1e15

_BINARY_OPERATORS: dict[type, Callable[[float, float], float]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPERATORS: dict[type, Callable[[float], float]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}

# Spoken operators; multi-word phrases are rewritten first.
_WORD_OPERATORS = (
    (r"\bdivided\s+by\b", "/"),
    (r"\bmultiplied\s+by\b", "*"),
    (r"\bto\s+the\s+power\s+of\b", "**"),
    (r"\bover\b", "/"),
    (r"\btimes\b", "*"),
    (r"\bplus\b", "+"),
    (r"\bminus\b", "-"),
    (r"\bmod(?:ulo)?\b", "%"),
    (r"(?<=\d)\s*[x×]\s*(?=[\d(])", "*"),
    (r"÷", "/"),
)

_QUESTION_PREFIX = re.compile(
    r"^(?:what\s+is|what's|whats|calculate|compute|solve|how\s+much\s+is|evaluate)\s+",
    re.IGNORECASE,
)
_EXPRESSION_CHARS = re.compile(r"^[\d\s.+\-*/%()]+$")
_HAS_OPERATOR = re.compile(r"\d\s*(?:\*\*|[+\-*/%])\s*[\d(\-]")


@dataclass(frozen=True)
class FastPathAnswer:
    """A deterministic reply.

    Attributes:
        text: Reply shown to the user.
        kind: What matched ("arithmetic", "greeting", ...).
    """

    text: str
    kind: str


@dataclass(frozen=True)
class CannedResponse:
    pattern: re.Pattern[str]
    text: str
    kind: str


CANNED_RESPONSES: tuple[CannedResponse, ...] = (
    CannedResponse(
        re.compile(r"^(hi|hello|hey|greetings?|good\s+(morning|afternoon|evening))$", re.I),
        "Hello! I can help you navigate EduDash Pro. "
        "Try asking about Lessons, Students, Worksheets, or Reports.",
        "greeting",
    ),
    CannedResponse(
        re.compile(r"^what\s+(can|do)\s+(you|dash)\s+do$", re.I),
        "I can navigate you to any screen, help with Lesson Planning, generate "
        "Worksheets, track Student Progress, manage Attendance, and message "
        "Parents. What would you like to do?",
        "capabilities",
    ),
    CannedResponse(
        re.compile(r"^(help|help me|i need help)$", re.I),
        "I'm here to help! You can ask me to navigate to any screen, create "
        "lessons, generate worksheets, or check student progress. What do you need?",
        "help",
    ),
    CannedResponse(
        re.compile(r"^(thanks|thank\s+you|thx|ty)(\s+(so\s+much|dash))?$", re.I),
        "You're welcome! Anything else you need help with?",
        "thanks",
    ),
    CannedResponse(
        re.compile(r"^how\s+are\s+you(\s+doing)?(\s+today)?$", re.I),
        "All systems running smoothly! What can I help you with?",
        "how_are_you",
    ),
)


class FastPathClassifier:
    """Classifies utterances as fast-path or full-turn.

    Args:
        canned: Pattern/response table checked after arithmetic.
    """

    def __init__(self, canned: tuple[CannedResponse, ...] = CANNED_RESPONSES) -> None:
        self._canned = canned

    def classify(self, utterance: str) -> FastPathAnswer | None:
        """Return the deterministic answer, or None for a full turn."""
        normalized = _normalize(utterance)
        if not normalized:
            return None

        answer = self._arithmetic(normalized)
        if answer is not None:
            return answer

        for canned in self._canned:
            if canned.pattern.match(normalized):
                return FastPathAnswer(text=canned.text, kind=canned.kind)
        return None

    def _arithmetic(self, normalized: str) -> FastPathAnswer | None:
        expression = _extract_expression(normalized)
        if expression is None:
            return None

        try:
            value = evaluate_expression(expression)
        except ZeroDivisionError:
            return FastPathAnswer(text="Division by zero is undefined.", kind="arithmetic")
        except (ValueError, SyntaxError, OverflowError) as e:
            logger.debug("Not a fast-path expression %r: %s", expression, str(e))
            return None

        display = " ".join(expression.split())
        return FastPathAnswer(text=f"{display} = {format_number(value)}", kind="arithmetic")


def _normalize(utterance: str) -> str:
    text = utterance.strip().rstrip("?!.").strip()
    return re.sub(r"\s+", " ", text)


def _extract_expression(normalized: str) -> str | None:
    candidate = _QUESTION_PREFIX.sub("", normalized)
    for pattern, symbol in _WORD_OPERATORS:
        candidate = re.sub(pattern, f" {symbol} ", candidate, flags=re.IGNORECASE)
    candidate = candidate.strip()

    if len(candidate) > MAX_EXPRESSION_LENGTH:
        return None
    if not _EXPRESSION_CHARS.match(candidate) or not _HAS_OPERATOR.search(candidate):
        return None
    return candidate


def evaluate_expression(expression: str) -> float:
    """Evaluate an arithmetic expression.

    Raises:
        SyntaxError: If the text does not parse.
        ValueError: If it contains anything but numbers and operators,
            or the result is out of range.
        ZeroDivisionError: On division by zero.
    """
    tree = ast.parse(expression, mode="eval")
    value = _evaluate(tree.body)
    if math.isnan(value) or math.isinf(value) or abs(value) > MAX_MAGNITUDE:
        raise ValueError("Result out of range")
    return value


def _in_range(value: float) -> float:
    if abs(value) > MAX_MAGNITUDE:
        raise ValueError("Result out of range")
    return value


def _evaluate(node: ast.AST) -> float:
    # Every intermediate value is range-checked so no step builds a huge integer
    if isinstance(node, ast.Constant) and type(node.value) in (int, float):
        return _in_range(node.value)
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPERATORS:
        return _UNARY_OPERATORS[type(node.op)](_evaluate(node.operand))
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPERATORS:
        left = _evaluate(node.left)
        right = _evaluate(node.right)
        if isinstance(node.op, ast.Pow):
            if abs(right) > MAX_EXPONENT:
                raise ValueError("Exponent too large")
            if left < 0 and not float(right).is_integer():
                raise ValueError("Complex result")
            if left != 0 and right * math.log10(abs(left)) > math.log10(MAX_MAGNITUDE):
                raise ValueError("Result out of range")
        return _in_range(_BINARY_OPERATORS[type(node.op)](left, right))
    raise ValueError(f"Unsupported expression node: {type(node).__name__}")


def format_number(value: float) -> str:
    """Format a result without float noise ("8", "2.5", "0.333333")."""
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.6f}".rstrip("0").rstrip(".")
