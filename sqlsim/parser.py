"""
SQL Parser for sqlsim
Turns one statement of SQL text into a typed query object.
"""

import re
from typing import Any, List, Optional
from dataclasses import dataclass, field

from sqlsim.errors import ParseError, UnsupportedFeatureError
from sqlsim.expressions import ColumnRef, ExpressionParser
from sqlsim.lexer import TokenStream, TokenType, tokenize
from sqlsim.types import ForeignKey, ReferentialAction

SUPPORTED_STATEMENTS = 'CREATE TABLE, CREATE VIEW, DROP TABLE, INSERT, UPDATE, DELETE, SELECT'

AGGREGATE_FUNCTIONS = ('COUNT', 'SUM', 'AVG', 'MIN', 'MAX')

LINE_COMMENT_MARKERS = ('--', '//', '#', '－－', '——')

_UNSUPPORTED_STATEMENTS = {
    'BEGIN': 'Transactions are not supported',
    'START': 'Transactions are not supported',
    'COMMIT': 'Transactions are not supported',
    'ROLLBACK': 'Transactions are not supported',
    'ALTER': 'ALTER TABLE is not supported; drop and re-create the table',
}


# ==================== Query objects ====================

@dataclass
class ParsedQuery:
    """Base class for parsed queries"""
    query_type: str


@dataclass
class ColumnSpec:
    """Column as written in CREATE TABLE, before validation"""
    name: str
    type_name: str
    params: List[Any] = field(default_factory=list)
    primary: bool = False
    unique: bool = False
    not_null: bool = False
    auto_increment: bool = False


@dataclass
class CreateTableQuery(ParsedQuery):
    """Parsed CREATE TABLE query"""
    table_name: str
    columns: List[ColumnSpec]
    primary_key: Optional[List[str]] = None
    unique_keys: List[List[str]] = field(default_factory=list)
    foreign_keys: List[ForeignKey] = field(default_factory=list)
    if_not_exists: bool = False


@dataclass
class StarItem:
    table: Optional[str] = None


@dataclass
class ColumnItem:
    expr: str
    alias: str


@dataclass
class AggregateItem:
    fn: str
    arg: str  # column name or '*'
    alias: str


@dataclass
class OrderItem:
    column: str
    descending: bool = False


@dataclass
class SelectQuery(ParsedQuery):
    """Parsed SELECT query"""
    items: List[Any]
    table_name: str
    alias: Optional[str] = None
    distinct: bool = False
    where: Any = None
    group_by: Optional[List[str]] = None
    having: Any = None
    order_by: List[OrderItem] = field(default_factory=list)
    limit: Optional[int] = None
    offset: int = 0

    @property
    def has_aggregates(self) -> bool:
        return any(isinstance(item, AggregateItem) for item in self.items)


@dataclass
class CreateViewQuery(ParsedQuery):
    """Parsed CREATE VIEW query"""
    view_name: str
    select: SelectQuery


@dataclass
class DropTableQuery(ParsedQuery):
    """Parsed DROP TABLE query"""
    table_name: str
    if_exists: bool = False


@dataclass
class InsertQuery(ParsedQuery):
    """Parsed INSERT query"""
    table_name: str
    columns: Optional[List[str]]
    rows: List[List[Any]]


@dataclass
class Assignment:
    column: str
    expr: Any


@dataclass
class UpdateQuery(ParsedQuery):
    """Parsed UPDATE query"""
    table_name: str
    assignments: List[Assignment]
    where: Any = None


@dataclass
class DeleteQuery(ParsedQuery):
    """Parsed DELETE query"""
    table_name: str
    where: Any = None


# ==================== Text helpers ====================

def strip_comments(sql: str) -> str:
    """Remove /* */ block comments and --, //, # line comments outside quotes"""
    out = []
    i = 0
    n = len(sql)
    quote = None
    while i < n:
        char = sql[i]
        if quote:
            out.append(char)
            if char == quote:
                quote = None
            i += 1
            continue
        if char in ("'", '"'):
            quote = char
            out.append(char)
            i += 1
            continue
        if sql.startswith('/*', i):
            end = sql.find('*/', i + 2)
            i = n if end == -1 else end + 2
            out.append(' ')
            continue
        if sql.startswith(LINE_COMMENT_MARKERS, i):
            end = sql.find('\n', i)
            i = n if end == -1 else end
            continue
        out.append(char)
        i += 1
    return ''.join(out)


def split_statements(sql: str) -> List[str]:
    """Split on semicolons that are not inside quotes"""
    statements = []
    current = []
    quote = None
    for char in sql:
        if quote:
            if char == quote:
                quote = None
        elif char in ("'", '"'):
            quote = char
        elif char == ';':
            statements.append(''.join(current).strip())
            current = []
            continue
        current.append(char)
    statements.append(''.join(current).strip())
    return [s for s in statements if s]


def alias_from_expr(expr: str) -> str:
    return re.sub(r'[^\w.]+', '_', expr)


# ==================== Parser ====================

class SQLParser:
    """Recursive descent parser for a single SQL statement"""

    def __init__(self, query: str):
        self.query = query
        self.stream = TokenStream(tokenize(query), query)
        self.expressions = ExpressionParser(self.stream)

    @classmethod
    def parse(cls, query: str) -> ParsedQuery:
        """Main parsing method - routes to specific parsers"""
        return cls(query.strip())._parse_statement()

    @staticmethod
    def get_query_type(query: str) -> str:
        """Get the type of SQL query from its leading keyword(s)"""
        match = re.match(r'\s*(\w+)(?:\s+(\w+))?', query)
        if not match:
            return 'UNKNOWN'
        first = match.group(1).upper()
        second = (match.group(2) or '').upper()

        if first == 'CREATE' and second == 'TABLE':
            return 'CREATE_TABLE'
        elif first == 'CREATE' and second == 'VIEW':
            return 'CREATE_VIEW'
        elif first == 'DROP' and second == 'TABLE':
            return 'DROP_TABLE'
        elif first in ('INSERT', 'UPDATE', 'DELETE', 'SELECT'):
            return first
        else:
            return 'UNKNOWN'

    def _parse_statement(self) -> ParsedQuery:
        stream = self.stream
        token = stream.current

        if token.is_keyword('CREATE'):
            if stream.peek().is_keyword('TABLE'):
                query = self._parse_create_table()
            elif stream.peek().is_keyword('VIEW'):
                query = self._parse_create_view()
            else:
                raise UnsupportedFeatureError(
                    f"Only CREATE TABLE and CREATE VIEW are supported. "
                    f"Supported statements: {SUPPORTED_STATEMENTS}")
        elif token.is_keyword('DROP'):
            if not stream.peek().is_keyword('TABLE'):
                raise UnsupportedFeatureError(
                    f"Only DROP TABLE is supported. Supported statements: {SUPPORTED_STATEMENTS}")
            query = self._parse_drop_table()
        elif token.is_keyword('INSERT'):
            query = self._parse_insert()
        elif token.is_keyword('UPDATE'):
            query = self._parse_update()
        elif token.is_keyword('DELETE'):
            query = self._parse_delete()
        elif token.is_keyword('SELECT'):
            query = self._parse_select()
        elif token.type == TokenType.EOF:
            raise ParseError("Empty statement")
        else:
            word = str(token.value).upper()
            reason = _UNSUPPORTED_STATEMENTS.get(word, f"Unsupported statement '{token.value}'")
            raise UnsupportedFeatureError(f"{reason}. Supported statements: {SUPPORTED_STATEMENTS}")

        self._finish()
        return query

    def _finish(self):
        stream = self.stream
        stream.match(TokenType.SEMICOLON)
        if stream.at_end():
            return
        if SQLParser.get_query_type(self.query[stream.current.position:]) != 'UNKNOWN':
            raise ParseError("Only one statement can run at a time (CREATE TABLE batches excepted)")
        raise stream.error("Unexpected text after statement")

    def _identifier_list(self, what: str) -> List[str]:
        stream = self.stream
        stream.expect(TokenType.LPAREN, f"'(' before {what}")
        names = [stream.expect_identifier(what)]
        while stream.match(TokenType.COMMA):
            names.append(stream.expect_identifier(what))
        stream.expect(TokenType.RPAREN, f"')' after {what}")
        return names

    # ---------- CREATE TABLE ----------

    def _parse_create_table(self) -> CreateTableQuery:
        stream = self.stream
        stream.expect_keyword('CREATE')
        stream.expect_keyword('TABLE')

        if_not_exists = False
        if stream.current.is_word('IF'):
            stream.advance()
            stream.expect_keyword('NOT')
            stream.expect_word('EXISTS')
            if_not_exists = True

        table_name = stream.expect_identifier('table name')
        query = CreateTableQuery(query_type='CREATE_TABLE', table_name=table_name,
                                 columns=[], if_not_exists=if_not_exists)

        stream.expect(TokenType.LPAREN, "'(' after table name")
        self._parse_table_element(query)
        while stream.match(TokenType.COMMA):
            self._parse_table_element(query)
        stream.expect(TokenType.RPAREN, "')' to close column list")

        if not query.columns:
            raise ParseError(f"Table {table_name} needs at least one column")
        return query

    def _parse_table_element(self, query: CreateTableQuery):
        stream = self.stream
        constraint_name = None
        if stream.current.is_word('CONSTRAINT'):
            stream.advance()
            constraint_name = stream.expect_identifier('constraint name')

        if stream.current.is_word('PRIMARY'):
            stream.advance()
            stream.expect_word('KEY')
            if query.primary_key is not None:
                raise ParseError(f"Table {query.table_name} declares more than one PRIMARY KEY")
            query.primary_key = self._identifier_list('primary key columns')
        elif stream.current.is_word('UNIQUE'):
            stream.advance()
            stream.match_word('KEY', 'INDEX')
            if stream.current.type == TokenType.IDENTIFIER:
                stream.advance()  # UNIQUE name (cols)
            query.unique_keys.append(self._identifier_list('unique columns'))
        elif stream.current.is_word('FOREIGN'):
            stream.advance()
            stream.expect_word('KEY')
            columns = self._identifier_list('foreign key columns')
            fk = self._parse_references(columns)
            fk.name = constraint_name
            query.foreign_keys.append(fk)
        elif constraint_name is not None:
            raise stream.error("Expected PRIMARY KEY, UNIQUE or FOREIGN KEY after CONSTRAINT name")
        else:
            self._parse_column(query)

    def _parse_column(self, query: CreateTableQuery):
        stream = self.stream
        start = stream.current
        if start.type != TokenType.IDENTIFIER:
            raise stream.error("Unsupported column syntax")
        col = ColumnSpec(name=stream.advance().value, type_name='')

        if stream.current.type != TokenType.IDENTIFIER:
            raise stream.error(f"Column {col.name} needs a type, e.g. {col.name} INT;")
        col.type_name = stream.advance().value.upper()
        if col.type_name == 'DOUBLE' and stream.current.is_word('PRECISION'):
            stream.advance()

        if stream.match(TokenType.LPAREN):
            col.params.append(self._type_param())
            while stream.match(TokenType.COMMA):
                col.params.append(self._type_param())
            stream.expect(TokenType.RPAREN, "')' after type parameters")

        while True:
            token = stream.current
            if token.is_word('PRIMARY'):
                stream.advance()
                stream.expect_word('KEY')
                col.primary = True
            elif token.is_word('UNIQUE'):
                stream.advance()
                col.unique = True
            elif token.is_keyword('NOT'):
                stream.advance()
                stream.expect_keyword('NULL')
                col.not_null = True
            elif token.is_keyword('NULL'):
                stream.advance()
            elif token.is_word('AUTO_INCREMENT', 'AUTOINCREMENT'):
                stream.advance()
                col.auto_increment = True
            elif token.is_word('REFERENCES'):
                fk = self._parse_references([col.name])
                query.foreign_keys.append(fk)
            elif token.type in (TokenType.COMMA, TokenType.RPAREN):
                break
            else:
                raise stream.error(f"Unsupported column syntax in {col.name}")

        query.columns.append(col)

    def _type_param(self) -> Any:
        token = self.stream.current
        if token.type != TokenType.NUMBER:
            raise self.stream.error("Type parameters must be numbers")
        return self.stream.advance().value

    def _parse_references(self, columns: List[str]) -> ForeignKey:
        stream = self.stream
        stream.expect_word('REFERENCES')
        ref_table = stream.expect_identifier('referenced table')
        ref_columns = self._identifier_list('referenced columns')
        fk = ForeignKey(columns=columns, ref_table=ref_table, ref_columns=ref_columns)

        while stream.current.is_word('ON'):
            stream.advance()
            if stream.match_keyword('DELETE'):
                fk.on_delete = self._parse_action()
            elif stream.match_keyword('UPDATE'):
                fk.on_update = self._parse_action()
            else:
                raise stream.error("Expected DELETE or UPDATE after ON")
        return fk

    def _parse_action(self) -> ReferentialAction:
        stream = self.stream
        if stream.match_word('RESTRICT'):
            return ReferentialAction.RESTRICT
        if stream.match_word('CASCADE'):
            return ReferentialAction.CASCADE
        if stream.match_keyword('SET'):
            stream.expect_keyword('NULL')
            return ReferentialAction.SET_NULL
        if stream.match_word('NO'):
            stream.expect_word('ACTION')
            return ReferentialAction.RESTRICT
        raise stream.error("Expected RESTRICT, CASCADE or SET NULL")

    # ---------- CREATE VIEW / DROP TABLE ----------

    def _parse_create_view(self) -> CreateViewQuery:
        stream = self.stream
        stream.expect_keyword('CREATE')
        stream.expect_keyword('VIEW')
        view_name = stream.expect_identifier('view name')
        if not stream.match_keyword('AS') or not stream.current.is_keyword('SELECT'):
            raise ParseError('CREATE VIEW expects: CREATE VIEW name AS SELECT ...')
        return CreateViewQuery(query_type='CREATE_VIEW', view_name=view_name,
                               select=self._parse_select())

    def _parse_drop_table(self) -> DropTableQuery:
        stream = self.stream
        stream.expect_keyword('DROP')
        stream.expect_keyword('TABLE')
        if_exists = False
        if stream.current.is_word('IF'):
            stream.advance()
            stream.expect_word('EXISTS')
            if_exists = True
        return DropTableQuery(query_type='DROP_TABLE',
                              table_name=stream.expect_identifier('table name'),
                              if_exists=if_exists)

    # ---------- INSERT / UPDATE / DELETE ----------

    def _parse_insert(self) -> InsertQuery:
        stream = self.stream
        stream.expect_keyword('INSERT')
        stream.expect_keyword('INTO')
        table_name = stream.expect_identifier('table name')

        columns = None
        if stream.current.type == TokenType.LPAREN:
            columns = self._identifier_list('column names')

        if not stream.match_keyword('VALUES'):
            if stream.current.is_keyword('SELECT'):
                raise UnsupportedFeatureError("INSERT ... SELECT is not supported")
            raise ParseError('Only supports: INSERT INTO table [(col, ...)] VALUES (val, ...)[, (val, ...), ...]')

        rows = [self._parse_tuple()]
        while stream.match(TokenType.COMMA):
            rows.append(self._parse_tuple())

        return InsertQuery(query_type='INSERT', table_name=table_name,
                           columns=columns, rows=rows)

    def _parse_tuple(self) -> List[Any]:
        stream = self.stream
        stream.expect(TokenType.LPAREN, "'(' before VALUES tuple")
        values = [self._parse_value()]
        while stream.match(TokenType.COMMA):
            values.append(self._parse_value())
        stream.expect(TokenType.RPAREN, "')' after VALUES tuple")
        return values

    def _parse_value(self) -> Any:
        """Literal value; an unquoted word is taken as text"""
        operand = self.expressions.parse_operand()
        if isinstance(operand, ColumnRef):
            return operand.name
        return operand.value

    def _parse_update(self) -> UpdateQuery:
        stream = self.stream
        stream.expect_keyword('UPDATE')
        table_name = stream.expect_identifier('table name')
        if not stream.match_keyword('SET'):
            raise ParseError('Malformed UPDATE. Expected: UPDATE table SET col=expr[, ...] [WHERE expr]')

        assignments = [self._parse_assignment()]
        while stream.match(TokenType.COMMA):
            assignments.append(self._parse_assignment())

        where = None
        if stream.match_keyword('WHERE'):
            where = self.expressions.parse_condition()

        return UpdateQuery(query_type='UPDATE', table_name=table_name,
                           assignments=assignments, where=where)

    def _parse_assignment(self) -> Assignment:
        stream = self.stream
        start = stream.current
        try:
            column = stream.expect_identifier('column name')
            stream.expect(TokenType.EQ, "'='")
            expr = self.expressions.parse_set_expression()
        except ParseError as e:
            raise ParseError(f"Bad SET item: {stream.fragment(start)} ({e})")

        token = stream.current
        if not (token.type in (TokenType.COMMA, TokenType.SEMICOLON, TokenType.EOF)
                or token.is_keyword('WHERE')):
            raise ParseError(f"Bad SET item: {stream.fragment(start)}")
        return Assignment(column=column.rsplit('.', 1)[-1], expr=expr)

    def _parse_delete(self) -> DeleteQuery:
        stream = self.stream
        stream.expect_keyword('DELETE')
        stream.expect_keyword('FROM')
        table_name = stream.expect_identifier('table name')
        where = None
        if stream.match_keyword('WHERE'):
            where = self.expressions.parse_condition()
        return DeleteQuery(query_type='DELETE', table_name=table_name, where=where)

    # ---------- SELECT ----------

    def _parse_select(self) -> SelectQuery:
        stream = self.stream
        stream.expect_keyword('SELECT')
        distinct = stream.match_keyword('DISTINCT')

        items = [self._parse_select_item()]
        while stream.match(TokenType.COMMA):
            items.append(self._parse_select_item())

        if not stream.match_keyword('FROM'):
            raise stream.error("Malformed SELECT: expected FROM")

        if any(token.is_keyword('JOIN') for token in stream.tokens[stream.index:]):
            raise UnsupportedFeatureError('JOIN is not supported yet (coming soon)')
        if stream.current.type == TokenType.LPAREN:
            raise UnsupportedFeatureError("Subqueries are not supported")

        table_name = stream.expect_identifier('table name')
        alias = None
        if stream.match_keyword('AS'):
            alias = stream.expect_identifier('table alias')
        elif stream.current.type == TokenType.IDENTIFIER:
            alias = stream.advance().value

        if stream.current.type == TokenType.COMMA:
            raise UnsupportedFeatureError("Only single-table SELECT is supported (no JOIN)")

        query = SelectQuery(query_type='SELECT', items=items, table_name=table_name,
                            alias=alias, distinct=distinct)

        if stream.match_keyword('WHERE'):
            query.where = self.expressions.parse_condition()

        if stream.match_keyword('GROUP'):
            stream.expect_keyword('BY')
            query.group_by = [stream.expect_identifier('GROUP BY column')]
            while stream.match(TokenType.COMMA):
                query.group_by.append(stream.expect_identifier('GROUP BY column'))

        if stream.match_keyword('HAVING'):
            query.having = self.expressions.parse_condition()

        if stream.match_keyword('ORDER'):
            stream.expect_keyword('BY')
            query.order_by = [self._parse_order_item()]
            while stream.match(TokenType.COMMA):
                query.order_by.append(self._parse_order_item())

        if stream.match_keyword('LIMIT'):
            self._parse_limit(query)
        elif stream.current.is_keyword('OFFSET'):
            stream.advance()
            query.offset = self._count('OFFSET')

        return query

    def _parse_select_item(self):
        stream = self.stream
        token = stream.current

        if token.type == TokenType.STAR and token.value == '*':
            stream.advance()
            return StarItem()

        if token.type != TokenType.IDENTIFIER:
            raise stream.error("Unsupported select item")

        if stream.peek().type == TokenType.STAR and stream.peek().value == '.*':
            stream.advance()
            stream.advance()
            return StarItem(table=token.value)

        if token.value.upper() in AGGREGATE_FUNCTIONS and stream.peek().type == TokenType.LPAREN:
            fn = stream.advance().value.upper()
            stream.advance()
            if stream.current.type == TokenType.STAR and stream.current.value == '*':
                stream.advance()
                arg = '*'
            elif stream.current.type == TokenType.IDENTIFIER:
                arg = stream.advance().value
            elif stream.current.is_keyword('DISTINCT'):
                raise UnsupportedFeatureError(f"{fn}(DISTINCT ...) is not supported")
            else:
                raise stream.error(f"{fn} expects * or a column")
            stream.expect(TokenType.RPAREN, f"')' after {fn} argument")
            alias = self._parse_alias() or fn.lower()
            return AggregateItem(fn=fn, arg=arg, alias=alias)

        if stream.peek().type == TokenType.LPAREN:
            raise stream.error(f"Unsupported function {token.value}")

        expr = stream.advance().value
        alias = self._parse_alias() or alias_from_expr(expr)
        return ColumnItem(expr=expr, alias=alias)

    def _parse_alias(self) -> Optional[str]:
        stream = self.stream
        if stream.match_keyword('AS'):
            if stream.current.type in (TokenType.IDENTIFIER, TokenType.STRING):
                return stream.advance().value
            raise stream.error("Expected alias after AS")
        if stream.current.type == TokenType.IDENTIFIER:
            return stream.advance().value
        return None

    def _parse_order_item(self) -> OrderItem:
        stream = self.stream
        column = stream.expect_identifier('ORDER BY column')
        descending = False
        if stream.match_keyword('DESC'):
            descending = True
        else:
            stream.match_keyword('ASC')
        return OrderItem(column=column, descending=descending)

    def _count(self, clause: str) -> int:
        token = self.stream.current
        if token.type != TokenType.NUMBER or not isinstance(token.value, int):
            raise self.stream.error(f"{clause} expects a whole number")
        return self.stream.advance().value

    def _parse_limit(self, query: SelectQuery):
        """LIMIT n | LIMIT n OFFSET m | LIMIT m, n"""
        stream = self.stream
        first = self._count('LIMIT')
        if stream.match_keyword('OFFSET'):
            query.limit = first
            query.offset = self._count('OFFSET')
        elif stream.match(TokenType.COMMA):
            query.offset = first
            query.limit = self._count('LIMIT')
        else:
            query.limit = first
