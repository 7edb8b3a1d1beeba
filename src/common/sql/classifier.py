"""Statement classifier: is a SQL text read-only or destructive?

This is a security boundary. It works lexically (no syntax tree) and fails
closed: empty input, text that cannot be lexed, statements it does not
recognise and internal errors all classify as destructive.

Known blind spots: SQL built dynamically from string literals inside a
recognised read statement, and user-defined functions with side effects that
are not in ``SIDE_EFFECT_FUNCTIONS``. Unknown statement types are not a blind
spot because every unrecognised leading keyword is rejected.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence

from common.policy.sql_policy import (
    ADMINISTRATIVE_STATEMENTS,
    DESTRUCTIVE_KEYWORDS,
    EXECUTION_KEYWORDS,
    FUNCTION_NAME_KEYWORDS,
    READ_ONLY_LEADERS,
    READ_ONLY_PRAGMA_FUNCTIONS,
    SIDE_EFFECT_FUNCTIONS,
    WRITE_PRAGMAS,
)
from common.sql.dialect import lex_profiles_for_dialect
from common.sql.lexer import LexProfile, SqlLexError, Token, TokenKind, split_statements, tokenize

MAX_STATEMENT_FRAGMENT = 120


class Verdict(str, Enum):
    """Classifier verdicts."""

    READ_ONLY = "read_only"
    DESTRUCTIVE = "destructive"


@dataclass(frozen=True)
class ClassificationResult:
    """Verdict plus the reason, keyword and statement fragment that decided it."""

    verdict: Verdict
    reason: Optional[str] = None
    keyword: Optional[str] = None
    statement: Optional[str] = None

    @property
    def is_destructive(self) -> bool:
        return self.verdict is Verdict.DESTRUCTIVE


READ_ONLY = ClassificationResult(Verdict.READ_ONLY)


def classify(sql: str, dialect: Optional[str] = None) -> ClassificationResult:
    """Classify SQL text as read-only or destructive.

    Every lexical reading for ``dialect`` is checked and the text is
    destructive if any reading says so. Never raises.
    """
    if not isinstance(sql, str) or not sql.strip():
        return _destructive("empty statement")

    try:
        conclusive = False
        for profile in lex_profiles_for_dialect(dialect):
            result = _classify_reading(sql, profile)
            if result is None:
                continue
            if result.is_destructive:
                return result
            conclusive = True
        if not conclusive:
            return _destructive("statement could not be parsed")
        return READ_ONLY
    except Exception:
        return _destructive("classifier error")


def is_destructive(sql: str, dialect: Optional[str] = None) -> bool:
    """Return True when ``sql`` must not run on a read-only source."""
    return classify(sql, dialect).is_destructive


def _classify_reading(sql: str, profile: LexProfile) -> Optional[ClassificationResult]:
    """Classify one lexical reading; None when the reading is inconclusive."""
    try:
        statements = split_statements(tokenize(sql, profile))
    except SqlLexError as exc:
        # Statements completed before the lex error may still execute.
        complete = split_statements(exc.tokens)[:-1]
        for statement in complete:
            if statement:
                result = _classify_statement(statement, sql)
                if result.is_destructive:
                    return result
        return None

    statements = [statement for statement in statements if statement]
    if not statements:
        return _destructive("no executable statement")

    for statement in statements:
        result = _classify_statement(statement, sql)
        if result.is_destructive:
            return result
    return READ_ONLY


def _classify_statement(tokens: List[Token], sql: str) -> ClassificationResult:
    fragment = _fragment(tokens, sql)

    index = 0
    while index < len(tokens) and tokens[index].is_punct("("):
        index += 1
    if index >= len(tokens) or tokens[index].kind is not TokenKind.WORD:
        return _destructive("unrecognized statement", statement=fragment)

    leader = tokens[index].upper
    if leader not in READ_ONLY_LEADERS:
        if leader in DESTRUCTIVE_KEYWORDS:
            reason = f"{leader} statement"
        elif leader in ADMINISTRATIVE_STATEMENTS:
            reason = f"administrative statement {leader}"
        else:
            reason = f"unrecognized statement {leader}"
        return _destructive(reason, keyword=leader, statement=fragment)

    body = tokens[index + 1 :]
    if leader == "PRAGMA":
        pragma_result = _classify_pragma(body, fragment)
        if pragma_result is not None:
            return pragma_result

    for position, token in enumerate(body):
        opens_call = _opens_call(body, position)
        if token.kind is TokenKind.IDENTIFIER:
            name = _unquote_identifier(token.text)
            if opens_call and name in SIDE_EFFECT_FUNCTIONS:
                return _destructive(
                    f"side-effecting function {name}()", keyword=name.upper(), statement=fragment
                )
            continue
        if token.kind is not TokenKind.WORD:
            continue
        word = token.upper
        if word in DESTRUCTIVE_KEYWORDS:
            if word in FUNCTION_NAME_KEYWORDS and opens_call:
                continue
            return _destructive(
                f"{word} inside {leader} statement", keyword=word, statement=fragment
            )
        if word in EXECUTION_KEYWORDS:
            return _destructive(
                f"{word} inside {leader} statement", keyword=word, statement=fragment
            )
        if opens_call and token.text.lower() in SIDE_EFFECT_FUNCTIONS:
            return _destructive(
                f"side-effecting function {token.text.lower()}()",
                keyword=word,
                statement=fragment,
            )

    return READ_ONLY


def _classify_pragma(body: Sequence[Token], fragment: str) -> Optional[ClassificationResult]:
    """Reject PRAGMA forms that write; None defers to the keyword scan."""
    if any(token.is_punct("=") for token in body):
        return _destructive("PRAGMA assignment", keyword="PRAGMA", statement=fragment)

    words = [token for token in body if token.kind is TokenKind.WORD]
    if not words:
        return _destructive("unrecognized statement PRAGMA", keyword="PRAGMA", statement=fragment)

    # PRAGMA [schema.]name[(argument)]
    name_index = 0
    if len(body) > 2 and body[1].is_punct(".") and body[2].kind is TokenKind.WORD:
        name_index = 2
    name = body[name_index].text.lower() if body[name_index].kind is TokenKind.WORD else ""

    if name in WRITE_PRAGMAS:
        return _destructive(f"PRAGMA {name}", keyword="PRAGMA", statement=fragment)
    if any(token.is_punct("(") for token in body) and name not in READ_ONLY_PRAGMA_FUNCTIONS:
        return _destructive(f"PRAGMA {name} with argument", keyword="PRAGMA", statement=fragment)
    return None


def _opens_call(tokens: Sequence[Token], position: int) -> bool:
    following = position + 1
    return following < len(tokens) and tokens[following].is_punct("(")


def _unquote_identifier(text: str) -> str:
    """Lower-cased name inside a "quoted", `backticked` or [bracketed] identifier."""
    closer = "]" if text.startswith("[") else text[:1]
    return text[1:-1].replace(closer * 2, closer).lower()


def _fragment(tokens: List[Token], sql: str) -> str:
    text = " ".join(sql[tokens[0].start : tokens[-1].end].split())
    if len(text) > MAX_STATEMENT_FRAGMENT:
        return text[:MAX_STATEMENT_FRAGMENT] + "..."
    return text


def _destructive(
    reason: str, keyword: Optional[str] = None, statement: Optional[str] = None
) -> ClassificationResult:
    return ClassificationResult(
        verdict=Verdict.DESTRUCTIVE, reason=reason, keyword=keyword, statement=statement
    )
