"""CQL parser.

Covers the boolean/relational subset of CQL 1.2: search clauses with an
optional index and relation, parenthesised sub queries, the ``and``,
``or`` and ``not`` booleans (equal precedence, left associative) and a
trailing ``sortBy`` clause. Proximity and relation modifiers are
rejected.
"""

from __future__ import annotations

from functools import lru_cache

from cqlstore.core.exceptions import TranslationError

from ._models import (
    And,
    CQLOperator,
    CQLQuery,
    Expression,
    Not,
    Or,
    SortDirection,
    SortKey,
    Term,
)

SERVER_CHOICE = "cql.serverChoice"

_SYMBOLS = ("==", "<>", "<=", ">=", "=", "<", ">")
_RELATION_WORDS = ("any", "all", "exact", "within", "adj", "encloses")
_BOOLEANS = ("and", "or", "not", "prox")
_DELIMITERS = set('()/<>="') | {" ", "\t", "\r", "\n"}


class TokenType:
    LPAREN = "("
    RPAREN = ")"
    SLASH = "/"
    SYMBOL = "symbol"
    WORD = "word"
    QUOTED = "quoted"
    EOF = "eof"


class Token:
    type: str
    value: str
    pos: int

    def __init__(self, type: str, value: str, pos: int):
        self.type = type
        self.value = value
        self.pos = pos

    def is_word(self, *words: str) -> bool:
        return self.type == TokenType.WORD and self.value.lower() in words

    def __repr__(self) -> str:
        return f"Token({self.type}, {self.value!r}, {self.pos})"


class Lexer:
    def __init__(self, text: str):
        self.text = text

    def tokens(self) -> list[Token]:
        text = self.text
        tokens: list[Token] = []
        i = 0
        while i < len(text):
            ch = text[i]
            if ch.isspace():
                i += 1
            elif ch in "()":
                tokens.append(Token(ch, ch, i))
                i += 1
            elif ch == "/":
                tokens.append(Token(TokenType.SLASH, ch, i))
                i += 1
            elif ch in "<>=":
                symbol = next(s for s in _SYMBOLS if text.startswith(s, i))
                tokens.append(Token(TokenType.SYMBOL, symbol, i))
                i += len(symbol)
            elif ch == '"':
                value, end = self._read_quoted(i)
                tokens.append(Token(TokenType.QUOTED, value, i))
                i = end
            else:
                start = i
                while i < len(text) and text[i] not in _DELIMITERS:
                    i += 1
                tokens.append(Token(TokenType.WORD, text[start:i], start))
        tokens.append(Token(TokenType.EOF, "", len(text)))
        return tokens

    def _read_quoted(self, start: int) -> tuple[str, int]:
        # Only \" is unescaped; other escapes (\*, \?) stay for the
        # translator to tell literal from wildcard characters.
        text = self.text
        chars: list[str] = []
        i = start + 1
        while i < len(text):
            ch = text[i]
            if ch == "\\" and i + 1 < len(text):
                if text[i + 1] == '"':
                    chars.append('"')
                else:
                    chars.append(text[i : i + 2])
                i += 2
            elif ch == '"':
                return "".join(chars), i + 1
            else:
                chars.append(ch)
                i += 1
        raise TranslationError(f"Unterminated quoted string at {start}")


class CQLParser:
    tokens: list[Token]
    index: int

    def __init__(self, text: str):
        self.tokens = Lexer(text).tokens()
        self.index = 0

    @staticmethod
    def parse(text: str | None) -> CQLQuery:
        """Parse a CQL string.

        Args:
            text: CQL query. None or blank matches all records.

        Returns:
            Parsed query.

        Raises:
            TranslationError: The query is not valid CQL.
        """
        if text is None:
            return CQLQuery()
        return _parse_cached(text).model_copy(deep=True)

    def parse_query(self) -> CQLQuery:
        if self._peek().type == TokenType.EOF:
            return CQLQuery()
        where = self._parse_scoped_clause()
        sort_by: list[SortKey] = []
        if self._peek().is_word("sortby"):
            self._next()
            sort_by = self._parse_sort_spec()
        token = self._peek()
        if token.type != TokenType.EOF:
            raise self._error(f"Unexpected {token.value!r}", token)
        return CQLQuery(where=where, sort_by=sort_by)

    def _parse_scoped_clause(self) -> Expression:
        expr = self._parse_search_clause()
        while self._peek().is_word(*_BOOLEANS):
            token = self._next()
            boolean = token.value.lower()
            if boolean == "prox":
                raise TranslationError("Proximity queries are not supported")
            if self._peek().type == TokenType.SLASH:
                raise TranslationError("Boolean modifiers are not supported")
            right = self._parse_search_clause()
            if boolean == "and":
                expr = self._combine(And, expr, right)
            elif boolean == "or":
                expr = self._combine(Or, expr, right)
            else:
                expr = self._combine(And, expr, Not(expr=right))
        return expr

    def _combine(self, cls: type, left: Expression, right: Expression):
        # Left associative chains of one boolean stay a single node.
        if type(left) is cls:
            return cls(terms=[*left.terms, right])
        return cls(terms=[left, right])

    def _parse_search_clause(self) -> Expression:
        token = self._peek()
        if token.type == TokenType.LPAREN:
            self._next()
            expr = self._parse_scoped_clause()
            closing = self._next()
            if closing.type != TokenType.RPAREN:
                raise self._error("Expected ')'", closing)
            return expr
        if token.type not in (TokenType.WORD, TokenType.QUOTED):
            raise self._error("Expected search term", token)
        if self._at_relation():
            index = self._next().value
            operator = self._parse_relation()
            value = self._parse_search_term()
            return Term(field=index, operator=operator, value=value)
        return Term(field=SERVER_CHOICE, value=self._parse_search_term())

    def _at_relation(self) -> bool:
        following = self._peek(1)
        if following.type == TokenType.SYMBOL:
            return True
        if following.is_word(*_RELATION_WORDS):
            return self._peek(2).type in (
                TokenType.WORD,
                TokenType.QUOTED,
                TokenType.SLASH,
            )
        return False

    def _parse_relation(self) -> CQLOperator:
        token = self._next()
        if self._peek().type == TokenType.SLASH:
            raise TranslationError("Relation modifiers are not supported")
        try:
            return CQLOperator.parse(token.value)
        except ValueError:
            raise TranslationError(
                f"Relation {token.value!r} is not supported"
            ) from None

    def _parse_search_term(self) -> str:
        token = self._next()
        if token.type not in (TokenType.WORD, TokenType.QUOTED):
            raise self._error("Expected search term", token)
        return token.value

    def _parse_sort_spec(self) -> list[SortKey]:
        keys: list[SortKey] = []
        while self._peek().type in (TokenType.WORD, TokenType.QUOTED):
            field = self._next().value
            direction = SortDirection.ASC
            while self._peek().type == TokenType.SLASH:
                self._next()
                modifier = self._next()
                name = modifier.value.lower()
                if name in ("sort.ascending", "ascending"):
                    direction = SortDirection.ASC
                elif name in ("sort.descending", "descending"):
                    direction = SortDirection.DESC
                else:
                    raise self._error(
                        f"Sort modifier {modifier.value!r} is not supported",
                        modifier,
                    )
            keys.append(SortKey(field=field, direction=direction))
        if not keys:
            raise self._error("Expected sort key", self._peek())
        return keys

    def _peek(self, offset: int = 0) -> Token:
        position = min(self.index + offset, len(self.tokens) - 1)
        return self.tokens[position]

    def _next(self) -> Token:
        token = self._peek()
        if token.type != TokenType.EOF:
            self.index += 1
        return token

    def _error(self, message: str, token: Token) -> TranslationError:
        return TranslationError(f"{message} at position {token.pos}")


@lru_cache(maxsize=256)
def _parse_cached(text: str) -> CQLQuery:
    return CQLParser(text).parse_query()
