"""
Tests for the SQL tokenizer
"""

import pytest

from sqlsim.errors import ParseError
from sqlsim.lexer import TokenStream, TokenType, tokenize


def types_of(sql):
    return [token.type for token in tokenize(sql)]


def test_select_statement_tokens():
    tokens = tokenize("SELECT name FROM t WHERE age >= 21;")
    assert [t.type for t in tokens] == [
        TokenType.KEYWORD, TokenType.IDENTIFIER, TokenType.KEYWORD, TokenType.IDENTIFIER,
        TokenType.KEYWORD, TokenType.IDENTIFIER, TokenType.GTE, TokenType.NUMBER,
        TokenType.SEMICOLON, TokenType.EOF,
    ]
    assert tokens[7].value == 21


def test_keywords_are_uppercased_identifiers_keep_case():
    tokens = tokenize("select Name from Users")
    assert tokens[0].value == 'SELECT'
    assert tokens[1].value == 'Name'
    assert tokens[3].value == 'Users'


def test_both_not_equal_spellings():
    assert types_of("a != 1")[1] == TokenType.NEQ
    assert types_of("a <> 1")[1] == TokenType.NEQ


def test_string_literals():
    assert tokenize("'it''s'")[0].value == "it's"
    assert tokenize('"double"')[0].value == 'double'
    assert tokenize("'a -- b'")[0].value == 'a -- b'


def test_number_formats():
    assert tokenize("42")[0].value == 42
    assert tokenize(".5")[0].value == 0.5
    assert tokenize("1e3")[0].value == 1000.0
    assert isinstance(tokenize("2.0")[0].value, float)


def test_dotted_identifiers_and_alias_star():
    tokens = tokenize("u.name, u.*")
    assert tokens[0].type == TokenType.IDENTIFIER
    assert tokens[0].value == 'u.name'
    assert tokens[2].value == 'u'
    assert tokens[3].type == TokenType.STAR
    assert tokens[3].value == '.*'


def test_unterminated_string():
    with pytest.raises(ParseError, match="Unterminated string"):
        tokenize("SELECT 'oops")


def test_unexpected_character():
    with pytest.raises(ParseError, match="Unexpected character '@'"):
        tokenize("SELECT @x FROM t")


def test_stream_errors_name_the_fragment():
    stream = TokenStream(tokenize("FROM t"), "FROM t")
    with pytest.raises(ParseError, match="near 'FROM t'"):
        stream.expect_keyword('SELECT')
