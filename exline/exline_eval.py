"""
Default expression evaluator used by `echo`, `execute`, `let` and the
conditional commands.

Values are plain `str` and `int`. Expressions are parsed with the koine
grammar in `expression.yaml`, which reads the longest expression at the start
of its input and captures the remaining text, so argument lists such as
`echo 'a' 1+2` are evaluated one expression at a time.
"""

import os
import re
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from koine import Parser

Value = Union[str, int]

GRAMMAR_PATH = Path(__file__).parent / "expression.yaml"

_LEADING_INT = re.compile(r"\s*[-+]?\d+")
_DOUBLE_ESCAPES = {"n": "\n", "t": "\t", "\\": "\\", '"': '"'}
_BINARY = {"or_expr", "and_expr", "compare_expr", "concat_expr", "additive_expr"}
_OPERATORS = {"or_op", "and_op", "compare_op", "concat_op", "additive_op", "unary_op"}


class EvalError(Exception):
    """An expression could not be parsed; `position` is where it stopped."""
    def __init__(self, position: int, text: str = "", message: str = "Invalid expression"):
        self.position = position
        self.text = text
        super().__init__(f"{message}: {text}" if text else message)


def to_string(value: Value) -> str:
    return str(value)


def to_integer(value: Value) -> int:
    if isinstance(value, int):
        return value
    m = _LEADING_INT.match(value)
    return int(m.group(0)) if m else 0


def to_boolean(value: Value) -> bool:
    return to_integer(value) != 0


def _apply(op: str, left: Value, right: Value) -> Value:
    match op:
        case "||":
            return int(to_boolean(left) or to_boolean(right))
        case "&&":
            return int(to_boolean(left) and to_boolean(right))
        case ".":
            return to_string(left) + to_string(right)
        case "+":
            return to_integer(left) + to_integer(right)
        case "-":
            return to_integer(left) - to_integer(right)
    if isinstance(left, int) and isinstance(right, int):
        a, b = left, right
    else:
        a, b = to_string(left), to_string(right)
    match op:
        case "==":
            return int(a == b)
        case "!=":
            return int(a != b)
        case "<":
            return int(a < b)
        case "<=":
            return int(a <= b)
        case ">":
            return int(a > b)
        case ">=":
            return int(a >= b)
    raise ValueError(f"unknown operator {op!r}")


def _nodes(children: Any) -> Iterator[Dict]:
    """Yields the tagged nodes below `children`, flattening groupings."""
    if children is None:
        return
    if isinstance(children, list):
        for child in children:
            yield from _nodes(child)
    elif isinstance(children, dict):
        if "tag" in children:
            yield children
        else:
            # Named children.
            for child in children.values():
                yield from _nodes(child)


def _text(node: Dict) -> str:
    text = node.get("text")
    return text if text is not None else str(node.get("value", ""))


class Evaluator:
    """Evaluates expressions against session variables and the environment."""

    _parser: Optional[Parser] = None

    def __init__(self, variables: Optional[Dict[str, Value]] = None, environ=None):
        self.variables: Dict[str, Value] = {} if variables is None else variables
        self.environ = os.environ if environ is None else environ

    @property
    def parser(self) -> Parser:
        if Evaluator._parser is None:
            Evaluator._parser = Parser.from_file(str(GRAMMAR_PATH))
        return Evaluator._parser

    def _parse(self, text: str) -> List[Dict]:
        parse_out = self.parser.parse(text)
        if isinstance(parse_out, dict) and 'status' in parse_out:
            if parse_out.get('status') != 'success':
                raise EvalError(0, text)
            parse_out = parse_out.get('ast')
        nodes = list(_nodes(parse_out))
        if len(nodes) == 1 and nodes[0].get("tag") == "leading_expression":
            nodes = list(_nodes(nodes[0].get("children")))
        return nodes

    def evaluate(self, text: str) -> Tuple[Value, str]:
        """Parses one expression from the start of `text`.

        Returns the value and the unparsed rest of the text. Raises EvalError
        when no expression can be read.
        """
        nodes = self._parse(text)
        rest = next((_text(n) for n in nodes if n["tag"] == "rest"), "")
        expr = [n for n in nodes if n["tag"] != "rest"]
        if not expr:
            at = len(text) - len(text.lstrip(" \t"))
            raise EvalError(at, text[at:])
        return self._value(expr[0], text), rest

    def _value(self, node: Dict, text: str) -> Value:
        tag = node["tag"]
        match tag:
            case "number":
                value = node.get("value")
                return int(value) if value is not None else int(_text(node))
            case "single_quoted":
                return _text(node)[1:-1].replace("''", "'")
            case "double_quoted":
                return self._unescape(_text(node)[1:-1])
            case "env_var":
                return self.environ.get(_text(node)[1:], "")
            case "name":
                name = _text(node)
                if name not in self.variables:
                    at = max(node.get("col", 1) - 1, 0)
                    raise EvalError(at, text[at:])
                return self.variables[name]
            case "negation":
                op, operand = list(_nodes(node.get("children")))
                value = self._value(operand, text)
                if _text(op) == "!":
                    return int(not to_boolean(value))
                return -to_integer(value)

        children = list(_nodes(node.get("children")))
        if tag in _BINARY:
            left = self._value(children[0], text)
            for op, right in zip(children[1::2], children[2::2]):
                left = _apply(_text(op), left, self._value(right, text))
            return left
        # Choices and groups wrap a single operand.
        operands = [c for c in children if c["tag"] not in _OPERATORS]
        if len(operands) != 1:
            raise EvalError(0, text)
        return self._value(operands[0], text)

    @staticmethod
    def _unescape(body: str) -> str:
        out = []
        i = 0
        while i < len(body):
            ch = body[i]
            if ch == "\\" and i + 1 < len(body):
                nxt = body[i + 1]
                out.append(_DOUBLE_ESCAPES.get(nxt, nxt))
                i += 2
                continue
            out.append(ch)
            i += 1
        return "".join(out)

    def eval_arglist(self, args: str) -> str:
        """Evaluates space separated expressions and joins their values.

        Raises EvalError with the position of the first expression that could
        not be evaluated up to a blank or the end of the text.
        """
        result = ""
        rest = args.lstrip()
        while rest:
            start = len(args) - len(rest)
            try:
                value, tail = self.evaluate(rest)
            except EvalError:
                raise EvalError(start, rest) from None
            if tail and not tail[0].isspace():
                raise EvalError(start, rest)
            if result:
                result += " "
            result += to_string(value)
            rest = tail.lstrip()
        return result
