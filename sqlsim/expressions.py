"""
Boolean and arithmetic expressions for WHERE, HAVING and SET clauses.

Grammar (lowest to highest precedence):

    or         := and (OR and)*
    and        := primary (AND primary)*
    primary    := '(' or ')' | comparison
    comparison := operand op operand
                | operand [NOT] LIKE 'pattern'
                | operand [NOT] IN '(' operand (',' operand)* ')'
                | operand [NOT] BETWEEN operand AND operand
                | operand IS [NOT] NULL
    operand    := identifier | string | number | TRUE | FALSE | NULL

SET right-hand sides use the restricted form ``operand [(+|-|*|/) operand]``.
"""

import math
import re
from dataclasses import dataclass
from typing import Any, List, Union

from sqlsim.errors import ParseError, UnsupportedFeatureError
from sqlsim.lexer import (
    ARITHMETIC_TYPES, COMPARISON_TYPES, TokenStream, TokenType, tokenize,
)
from sqlsim.types import Row
from sqlsim import values


# ==================== AST ====================

@dataclass
class ColumnRef:
    name: str


@dataclass
class Literal:
    value: Any


Operand = Union[ColumnRef, Literal]


@dataclass
class Comparison:
    left: Operand
    op: str
    right: Operand


@dataclass
class Like:
    left: Operand
    pattern: str
    negate: bool = False


@dataclass
class InList:
    left: Operand
    items: List[Operand]
    negate: bool = False


@dataclass
class Between:
    left: Operand
    low: Operand
    high: Operand
    negate: bool = False


@dataclass
class IsNull:
    left: Operand
    negate: bool = False


@dataclass
class BoolOp:
    op: str  # AND / OR
    left: Any
    right: Any


@dataclass
class Group:
    inner: Any


@dataclass
class Arithmetic:
    left: Operand
    op: str  # + - * /
    right: Operand


_OPERATORS = {
    TokenType.EQ: '=',
    TokenType.NEQ: '!=',
    TokenType.LT: '<',
    TokenType.GT: '>',
    TokenType.LTE: '<=',
    TokenType.GTE: '>=',
}


# ==================== Parser ====================

class ExpressionParser:
    """Recursive descent parser over a shared token stream"""

    def __init__(self, stream: TokenStream):
        self.stream = stream

    def parse_condition(self):
        node = self.parse_or()
        return node

    def parse_or(self):
        node = self.parse_and()
        while self.stream.match_keyword('OR'):
            node = BoolOp('OR', node, self.parse_and())
        return node

    def parse_and(self):
        node = self.parse_primary()
        while self.stream.match_keyword('AND'):
            node = BoolOp('AND', node, self.parse_primary())
        return node

    def parse_primary(self):
        stream = self.stream
        if stream.current.type == TokenType.LPAREN:
            if stream.peek().is_keyword('SELECT'):
                raise UnsupportedFeatureError("Subqueries are not supported")
            stream.advance()
            inner = self.parse_or()
            stream.expect(TokenType.RPAREN, "')'")
            return Group(inner)
        return self.parse_comparison()

    def parse_comparison(self):
        stream = self.stream
        left = self.parse_operand()

        if stream.match_keyword('IS'):
            negate = stream.match_keyword('NOT')
            if not stream.match_keyword('NULL'):
                raise stream.error("IS only supports NULL")
            return IsNull(left, negate)

        negate = stream.match_keyword('NOT')

        if stream.match_keyword('LIKE'):
            if stream.current.type != TokenType.STRING:
                raise stream.error("LIKE needs a quoted pattern")
            return Like(left, stream.advance().value, negate)

        if stream.match_keyword('IN'):
            return InList(left, self._parse_in_items(), negate)

        if stream.match_keyword('BETWEEN'):
            low = self.parse_operand()
            if not stream.match_keyword('AND'):
                raise stream.error("BETWEEN requires: expr BETWEEN a AND b")
            high = self.parse_operand()
            return Between(left, low, high, negate)

        if negate:
            raise stream.error("Expected IN, LIKE or BETWEEN after NOT")

        if stream.current.type not in COMPARISON_TYPES:
            raise stream.error("Expected comparison operator")
        op = _OPERATORS[stream.advance().type]
        right = self.parse_operand()
        return Comparison(left, op, right)

    def _parse_in_items(self) -> List[Operand]:
        stream = self.stream
        stream.expect(TokenType.LPAREN, "'(' after IN")
        if stream.current.is_keyword('SELECT'):
            raise UnsupportedFeatureError("Subqueries are not supported")
        items = []
        if stream.current.type != TokenType.RPAREN:
            items.append(self.parse_operand())
            while stream.match(TokenType.COMMA):
                items.append(self.parse_operand())
        stream.expect(TokenType.RPAREN, "')' to close IN list")
        return items

    def parse_operand(self) -> Operand:
        stream = self.stream
        token = stream.current

        if token.type == TokenType.IDENTIFIER:
            stream.advance()
            if stream.current.type == TokenType.LPAREN:
                raise stream.error(
                    f"Function calls like {token.value}(...) are only allowed in the "
                    f"SELECT list; refer to them by alias", token)
            return ColumnRef(token.value)

        if token.type in (TokenType.STRING, TokenType.NUMBER):
            stream.advance()
            return Literal(token.value)

        if token.type in (TokenType.MINUS, TokenType.PLUS) and stream.peek().type == TokenType.NUMBER:
            stream.advance()
            number = stream.advance().value
            return Literal(-number if token.type == TokenType.MINUS else number)

        if token.is_keyword('TRUE', 'FALSE'):
            stream.advance()
            return Literal(token.value == 'TRUE')

        if token.is_keyword('NULL'):
            stream.advance()
            return Literal(None)

        if token.type == TokenType.LPAREN and stream.peek().is_keyword('SELECT'):
            raise UnsupportedFeatureError("Subqueries are not supported")

        raise stream.error("Expected column name or literal")

    def parse_set_expression(self):
        """operand [(+|-|*|/) operand]"""
        left = self.parse_operand()
        if self.stream.current.type in ARITHMETIC_TYPES:
            op = self.stream.advance().value
            right = self.parse_operand()
            return Arithmetic(left, op, right)
        return left


def parse_condition(text: str):
    """Parse a standalone WHERE/HAVING expression"""
    stream = TokenStream(tokenize(text), text)
    node = ExpressionParser(stream).parse_condition()
    if not stream.at_end():
        raise stream.error("Unexpected token in expression")
    return node


# ==================== Evaluation ====================

def resolve(name: str, row: Row) -> Any:
    """Value of a (possibly qualified) column in a flat row"""
    if name in row:
        return row[name]
    if '.' in name:
        return row.get(name.rsplit('.', 1)[1])
    return None


def operand_value(operand: Operand, row: Row) -> Any:
    if isinstance(operand, ColumnRef):
        return resolve(operand.name, row)
    return operand.value


def like_to_regex(pattern: str):
    """Compile a LIKE pattern: % -> .*, _ -> ., everything else literal"""
    parts = []
    for char in pattern:
        if char == '%':
            parts.append('.*')
        elif char == '_':
            parts.append('.')
        else:
            parts.append(re.escape(char))
    return re.compile(''.join(parts), re.IGNORECASE)


_COMPARATORS = {
    '=': values.strict_equals,
    '!=': lambda a, b: not values.strict_equals(a, b),
    '<': values.less_than,
    '>': values.greater_than,
    '<=': values.less_equal,
    '>=': values.greater_equal,
}


def evaluate(node, row: Row) -> bool:
    """Evaluate a boolean expression tree against one row"""
    if isinstance(node, BoolOp):
        if node.op == 'AND':
            return evaluate(node.left, row) and evaluate(node.right, row)
        return evaluate(node.left, row) or evaluate(node.right, row)

    if isinstance(node, Group):
        return evaluate(node.inner, row)

    if isinstance(node, Comparison):
        lhs = operand_value(node.left, row)
        rhs = operand_value(node.right, row)
        return _COMPARATORS[node.op](lhs, rhs)

    if isinstance(node, Like):
        lhs = operand_value(node.left, row)
        text = '' if lhs is None else values.to_text(lhs)
        matched = like_to_regex(node.pattern).fullmatch(text) is not None
        return matched != node.negate

    if isinstance(node, InList):
        lhs = operand_value(node.left, row)
        found = any(values.strict_equals(lhs, operand_value(item, row)) for item in node.items)
        return found != node.negate

    if isinstance(node, Between):
        lv = values.to_number(operand_value(node.left, row))
        low = values.to_number(operand_value(node.low, row))
        high = values.to_number(operand_value(node.high, row))
        inside = lv >= low and lv <= high
        return inside != node.negate

    if isinstance(node, IsNull):
        is_null = operand_value(node.left, row) is None
        return is_null != node.negate

    raise ParseError(f"Cannot evaluate expression node {node!r}")


def _divide(a, b):
    if b == 0:
        if a == 0 or values.is_nan(a):
            return values.NAN
        return math.copysign(math.inf, values.to_float(a)) * math.copysign(1, b)
    return values.to_float(a) / values.to_float(b)


def evaluate_set(node, row: Row) -> Any:
    """Evaluate a SET right-hand side against the original row.

    ``+`` adds when both sides convert to numbers and concatenates otherwise;
    ``-``, ``*`` and ``/`` always convert, producing NaN for text.
    """
    if not isinstance(node, Arithmetic):
        return operand_value(node, row)

    lhs = operand_value(node.left, row)
    rhs = operand_value(node.right, row)
    ln, rn = values.to_number(lhs), values.to_number(rhs)
    # int with float would overflow for huge ints
    if isinstance(ln, float) or isinstance(rn, float):
        ln, rn = values.to_float(ln), values.to_float(rn)

    if node.op == '+':
        if not values.is_nan(ln) and not values.is_nan(rn):
            return ln + rn
        left_text = '' if lhs is None else values.to_text(lhs)
        right_text = '' if rhs is None else values.to_text(rhs)
        return left_text + right_text
    if values.is_nan(ln) or values.is_nan(rn):
        return values.NAN
    if node.op == '-':
        return ln - rn
    if node.op == '*':
        return ln * rn
    return _divide(ln, rn)
