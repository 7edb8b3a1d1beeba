"""Dialect-aware SQL lexer used by the statement classifier.

The lexer only needs to answer one question reliably: which words in a SQL
text are code, and which are hidden inside literals, quoted identifiers or
comments. It does not build a syntax tree.

Dialects disagree on the lexical rules that matter here (backslash escapes,
``#`` comments, dollar quoting, bracket identifiers, comment nesting), so the
rules are captured in a ``LexProfile`` and callers may lex the same text under
several profiles.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Sequence


class TokenKind(str, Enum):
    """Lexical token categories."""

    WORD = "word"
    NUMBER = "number"
    STRING = "string"
    IDENTIFIER = "identifier"
    PUNCT = "punct"
    SEPARATOR = "separator"


@dataclass(frozen=True)
class Token:
    """A lexed token with its character span in the source text."""

    kind: TokenKind
    text: str
    start: int
    end: int

    @property
    def upper(self) -> str:
        return self.text.upper()

    def is_punct(self, char: str) -> bool:
        return self.kind is TokenKind.PUNCT and self.text == char


@dataclass(frozen=True)
class LexProfile:
    """Lexical rules for one reading of a SQL text."""

    name: str
    backslash_escapes: bool = False
    hash_comments: bool = False
    dash_comment_requires_space: bool = False
    executable_comments: bool = False
    nested_block_comments: bool = False
    dollar_quotes: bool = False
    bracket_identifiers: bool = False
    backtick_identifiers: bool = False
    double_quote_strings: bool = False


class SqlLexError(ValueError):
    """Raised when SQL text cannot be lexed under a profile.

    ``tokens`` holds everything lexed before the failure so callers can still
    reason about statements that were complete at that point.
    """

    def __init__(self, message: str, position: int, tokens: Sequence[Token] = ()) -> None:
        """Record the failure position and the tokens lexed so far."""
        super().__init__(f"{message} at position {position}")
        self.position = position
        self.tokens = list(tokens)


POSTGRES_PROFILE = LexProfile(name="postgres", nested_block_comments=True, dollar_quotes=True)
MYSQL_PROFILE = LexProfile(
    name="mysql",
    backslash_escapes=True,
    hash_comments=True,
    dash_comment_requires_space=True,
    executable_comments=True,
    backtick_identifiers=True,
    double_quote_strings=True,
)
MYSQL_NO_BACKSLASH_PROFILE = LexProfile(
    name="mysql_no_backslash_escapes",
    hash_comments=True,
    dash_comment_requires_space=True,
    executable_comments=True,
    backtick_identifiers=True,
    double_quote_strings=True,
)
SQLITE_PROFILE = LexProfile(name="sqlite", bracket_identifiers=True, backtick_identifiers=True)
SQLSERVER_PROFILE = LexProfile(
    name="sqlserver", nested_block_comments=True, bracket_identifiers=True
)

_DOLLAR_TAG_RE = re.compile(r"\$([A-Za-z_][A-Za-z0-9_]*)?\$")
_EXECUTABLE_COMMENT_RE = re.compile(r"/\*M?!\d*")


def tokenize(sql: str, profile: LexProfile = POSTGRES_PROFILE) -> List[Token]:
    """Split SQL text into tokens; comments and whitespace are dropped."""
    return _Lexer(sql, profile).run()


def split_statements(tokens: Sequence[Token]) -> List[List[Token]]:
    """Group tokens into statements separated by ``;`` (empty ones included)."""
    statements: List[List[Token]] = [[]]
    for token in tokens:
        if token.kind is TokenKind.SEPARATOR:
            statements.append([])
            continue
        statements[-1].append(token)
    return statements


def strip_sql_comments(sql: str, profile: LexProfile = POSTGRES_PROFILE) -> str:
    """Return SQL with comments removed and whitespace collapsed."""
    if not isinstance(sql, str) or not sql:
        return ""
    return " ".join(token.text for token in tokenize(sql, profile))


class _Lexer:
    def __init__(self, sql: str, profile: LexProfile) -> None:
        self.sql = sql
        self.profile = profile
        self.pos = 0
        self.tokens: List[Token] = []
        self.executable_depth = 0

    def _peek(self, offset: int = 0) -> str:
        index = self.pos + offset
        return self.sql[index] if index < len(self.sql) else ""

    def _fail(self, message: str, position: int) -> SqlLexError:
        return SqlLexError(message, position, self.tokens)

    def _add(self, kind: TokenKind, start: int, end: int) -> None:
        self.tokens.append(Token(kind, self.sql[start:end], start, end))

    def run(self) -> List[Token]:
        while self.pos < len(self.sql):
            ch = self._peek()
            nxt = self._peek(1)

            if ch.isspace():
                self.pos += 1
            elif ch == "-" and nxt == "-" and self._dash_comment_starts():
                self._skip_line_comment()
            elif ch == "#" and self.profile.hash_comments:
                self._skip_line_comment()
            elif ch == "/" and nxt == "*":
                self._block_comment()
            elif ch == "*" and nxt == "/" and self.executable_depth > 0:
                self.executable_depth -= 1
                self.pos += 2
            elif ch == "'":
                self._quoted(TokenKind.STRING, "'", self._backslash_string())
            elif ch == '"':
                if self.profile.double_quote_strings:
                    self._quoted(TokenKind.STRING, '"', self.profile.backslash_escapes)
                else:
                    self._quoted(TokenKind.IDENTIFIER, '"', False)
            elif ch == "`" and self.profile.backtick_identifiers:
                self._quoted(TokenKind.IDENTIFIER, "`", False)
            elif ch == "[" and self.profile.bracket_identifiers:
                self._quoted(TokenKind.IDENTIFIER, "]", False)
            elif ch == "$" and self.profile.dollar_quotes and self._dollar_string():
                continue
            elif ch == ";":
                self._add(TokenKind.SEPARATOR, self.pos, self.pos + 1)
                self.pos += 1
            elif ch.isalpha() or ch == "_":
                self._word()
            elif ch.isdigit():
                self._number()
            else:
                self._add(TokenKind.PUNCT, self.pos, self.pos + 1)
                self.pos += 1

        if self.executable_depth > 0:
            raise self._fail("Unterminated executable comment", len(self.sql))
        return self.tokens

    def _dash_comment_starts(self) -> bool:
        if not self.profile.dash_comment_requires_space:
            return True
        follower = self._peek(2)
        return follower == "" or follower.isspace()

    def _skip_line_comment(self) -> None:
        end = self.sql.find("\n", self.pos)
        self.pos = len(self.sql) if end == -1 else end + 1

    def _block_comment(self) -> None:
        start = self.pos
        if self.profile.executable_comments:
            match = _EXECUTABLE_COMMENT_RE.match(self.sql, self.pos)
            if match:
                # MySQL runs the body of /*! ... */ as code.
                self.executable_depth += 1
                self.pos = match.end()
                return

        depth = 1
        self.pos += 2
        while self.pos < len(self.sql):
            ch = self._peek()
            nxt = self._peek(1)
            if ch == "/" and nxt == "*" and self.profile.nested_block_comments:
                depth += 1
                self.pos += 2
            elif ch == "*" and nxt == "/":
                depth -= 1
                self.pos += 2
                if depth == 0:
                    return
            else:
                self.pos += 1
        raise self._fail("Unterminated block comment", start)

    def _backslash_string(self) -> bool:
        if self.profile.backslash_escapes:
            return True
        # PostgreSQL E'...' strings honour backslash escapes.
        if self.tokens:
            last = self.tokens[-1]
            if last.kind is TokenKind.WORD and last.upper == "E" and last.end == self.pos:
                return True
        return False

    def _quoted(
        self,
        kind: TokenKind,
        closer: str,
        backslash_escapes: bool,
    ) -> None:
        start = self.pos
        self.pos += 1
        while self.pos < len(self.sql):
            ch = self._peek()
            if backslash_escapes and ch == "\\":
                self.pos += 2
                continue
            if ch == closer:
                if self._peek(1) == closer:
                    self.pos += 2
                    continue
                self.pos += 1
                self._add(kind, start, self.pos)
                return
            self.pos += 1
        raise self._fail(f"Unterminated {kind.value}", start)

    def _dollar_string(self) -> bool:
        match = _DOLLAR_TAG_RE.match(self.sql, self.pos)
        if not match:
            return False
        start = self.pos
        tag = match.group(0)
        close = self.sql.find(tag, match.end())
        if close == -1:
            raise self._fail("Unterminated dollar-quoted string", start)
        self.pos = close + len(tag)
        self._add(TokenKind.STRING, start, self.pos)
        return True

    def _word(self) -> None:
        start = self.pos
        while self.pos < len(self.sql):
            ch = self._peek()
            if ch.isalnum() or ch in "_$":
                self.pos += 1
            else:
                break
        self._add(TokenKind.WORD, start, self.pos)

    def _number(self) -> None:
        start = self.pos
        while self.pos < len(self.sql):
            ch = self._peek()
            if ch.isalnum() or ch in "._":
                self.pos += 1
            else:
                break
        self._add(TokenKind.NUMBER, start, self.pos)
