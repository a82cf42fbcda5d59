"""Tokenizer and recursive descent parser for frame filter expressions.

The grammar is::

    expression := or_expr
    or_expr    := and_expr (("||" | "or") and_expr)*
    and_expr   := unary (("&&" | "and") unary)*
    unary      := ("!" | "not") unary | primary
    primary    := "(" expression ")" | term
    term       := STRING [":" numbers] | REGEX [":" numbers]
                | NAME [":" numbers] | SYMBOL | numbers
    numbers    := INT [":" INT] | "[" INT ("," INT)* "]"
                | "{" INT ("," INT)* "}" | "(" numbers ")"

Parsing produces an immutable expression tree. Turning that tree into a
predicate is done separately by :py:func:`allocviewer.filters.compile_expression`.
"""
import ast
import re
from dataclasses import dataclass
from typing import FrozenSet
from typing import Iterator
from typing import List
from typing import NamedTuple
from typing import Tuple
from typing import Union

from allocviewer._errors import FilterSyntaxError
from allocviewer._records import ALLOCATOR_FAMILIES

Numbers = Union[range, FrozenSet[int]]

_TOKEN_RE = re.compile(
    r"""
    (?P<space>\s+)
    |(?P<regex>r"(?:[^"\\]|\\.)*"|r'(?:[^'\\]|\\.)*')
    |(?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
    |(?P<symbol>:(?:<\w+>|[A-Za-z_][\w.]*))
    |(?P<int>\d+)
    |(?P<name>[A-Za-z_]\w*)
    |(?P<op>&&|\|\||[!()\[\]{},:])
    """,
    re.VERBOSE,
)

_KEYWORDS = {"and": "&&", "or": "||", "not": "!"}


class Token(NamedTuple):
    kind: str
    text: str
    position: int


@dataclass(frozen=True)
class StringTerm:
    value: str


@dataclass(frozen=True)
class PatternTerm:
    pattern: str


@dataclass(frozen=True)
class SymbolTerm:
    name: str


@dataclass(frozen=True)
class TypeTerm:
    name: str


@dataclass(frozen=True)
class Qualified:
    """A term restricted to a set of line numbers or allocation sizes."""

    term: Union[StringTerm, PatternTerm, TypeTerm]
    numbers: Numbers


@dataclass(frozen=True)
class Not:
    operand: "Expression"


@dataclass(frozen=True)
class And:
    operands: Tuple["Expression", ...]


@dataclass(frozen=True)
class Or:
    operands: Tuple["Expression", ...]


Expression = Union[StringTerm, PatternTerm, SymbolTerm, TypeTerm, Qualified, Not, And, Or]


def tokenize(text: str) -> Iterator[Token]:
    position = 0
    while position < len(text):
        match = _TOKEN_RE.match(text, position)
        if match is None:
            raise FilterSyntaxError(
                f"unexpected character {text[position]!r}", text, position
            )
        kind = match.lastgroup
        assert kind is not None
        value = match.group()
        if kind == "name" and value in _KEYWORDS:
            kind, value = "op", _KEYWORDS[value]
        if kind != "space":
            yield Token(kind, value, position)
        position = match.end()
    yield Token("end", "", len(text))


class _Parser:
    def __init__(self, text: str) -> None:
        self.text = text
        self.tokens: List[Token] = list(tokenize(text))
        self.index = 0

    @property
    def token(self) -> Token:
        return self.tokens[self.index]

    def error(self, message: str, token: Token) -> FilterSyntaxError:
        return FilterSyntaxError(message, self.text, token.position)

    def advance(self) -> Token:
        token = self.token
        if token.kind != "end":
            self.index += 1
        return token

    def accept(self, *ops: str) -> bool:
        if self.token.kind == "op" and self.token.text in ops:
            self.advance()
            return True
        return False

    def expect(self, op: str) -> None:
        if not self.accept(op):
            raise self.error(f"expected {op!r}", self.token)

    def parse(self) -> Expression:
        if self.token.kind == "end":
            raise self.error("empty filter expression", self.token)
        expression = self.parse_or()
        if self.token.kind != "end":
            raise self.error(f"unexpected {self.token.text!r}", self.token)
        return expression

    def parse_or(self) -> Expression:
        operands = [self.parse_and()]
        while self.accept("||"):
            operands.append(self.parse_and())
        return operands[0] if len(operands) == 1 else Or(tuple(operands))

    def parse_and(self) -> Expression:
        operands = [self.parse_unary()]
        while self.accept("&&"):
            operands.append(self.parse_unary())
        return operands[0] if len(operands) == 1 else And(tuple(operands))

    def parse_unary(self) -> Expression:
        if self.accept("!"):
            return Not(self.parse_unary())
        return self.parse_primary()

    def parse_primary(self) -> Expression:
        token = self.token
        if token.kind == "op" and token.text == "(":
            self.advance()
            expression = self.parse_or()
            self.expect(")")
            return expression
        if token.kind == "string":
            self.advance()
            return self.parse_qualifier(StringTerm(ast.literal_eval(token.text)))
        if token.kind == "regex":
            self.advance()
            pattern = ast.literal_eval(token.text)
            try:
                re.compile(pattern)
            except re.error as error:
                raise self.error(f"invalid regular expression: {error}", token)
            return self.parse_qualifier(PatternTerm(pattern))
        if token.kind == "name":
            self.advance()
            name = token.text.upper()
            if name not in ALLOCATOR_FAMILIES:
                raise self.error(f"unknown allocator type {token.text!r}", token)
            return self.parse_qualifier(TypeTerm(name))
        if token.kind == "symbol":
            self.advance()
            if self.token.kind == "op" and self.token.text == ":":
                raise self.error(
                    "function names cannot be restricted to lines or sizes",
                    self.token,
                )
            return SymbolTerm(token.text[1:])
        if token.kind == "int" or (token.kind == "op" and token.text in "[{"):
            return Qualified(TypeTerm("ANY"), self.parse_numbers())
        if token.kind == "end":
            raise self.error("missing operand", token)
        raise self.error(f"unexpected {token.text!r}", token)

    def parse_qualifier(
        self, term: Union[StringTerm, PatternTerm, TypeTerm]
    ) -> Expression:
        if self.accept(":"):
            return Qualified(term, self.parse_numbers())
        return term

    def parse_int(self) -> int:
        token = self.token
        if token.kind != "int":
            raise self.error("expected an integer", token)
        self.advance()
        return int(token.text)

    def parse_numbers(self) -> Numbers:
        if self.accept("("):
            numbers = self.parse_numbers()
            self.expect(")")
            return numbers
        for opening, closing in (("[", "]"), ("{", "}")):
            if self.accept(opening):
                values = [self.parse_int()]
                while self.accept(","):
                    values.append(self.parse_int())
                self.expect(closing)
                return frozenset(values)
        start = self.parse_int()
        if self.accept(":"):
            stop_token = self.token
            stop = self.parse_int()
            if stop < start:
                raise self.error(f"empty range {start}:{stop}", stop_token)
            return range(start, stop + 1)
        return frozenset({start})


def parse(text: str) -> Expression:
    """Parse a filter expression into an expression tree."""
    return _Parser(text).parse()
