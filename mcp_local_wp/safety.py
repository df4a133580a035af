"""Lexical safety checks applied to every statement before execution.

The checks look at tokens, not a parse tree. They block statement batches,
schema changes, unbounded UPDATE/DELETE and writes that embed a SELECT, and
nothing beyond that.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Sequence

from .errors import IdentifierInvalidError

READ_KEYWORDS = frozenset({"select", "show", "describe", "desc", "explain"})
WRITE_KEYWORDS = frozenset({"insert", "update", "delete"})
PREDICATE_KEYWORDS = frozenset({"update", "delete"})

_BLOCK_COMMENT = re.compile(r"/\*.*?\*/", re.DOTALL)
# MySQL runs the body of /*! ... */ and MariaDB that of /*M! ... */.
_EXECUTABLE_COMMENT = re.compile(r"/\*M?!", re.IGNORECASE)
_LINE_COMMENT = re.compile(r"--[^\r\n]*")
_SELECT_WORD = re.compile(r"\bselect\b", re.IGNORECASE)
_IDENTIFIER = re.compile(r"^[A-Za-z0-9_$]{1,64}$")


class Category(str, Enum):
    """What a statement is allowed to do."""

    READ_ONLY = "read-only"
    WRITE = "write"
    UNSUPPORTED = "unsupported"


class RejectionReason(str, Enum):
    """Why a statement was refused."""

    EMPTY_QUERY = "empty-query"
    MULTIPLE_STATEMENTS = "multiple-statements"
    EXECUTABLE_COMMENT = "executable-comment"
    UNSUPPORTED_STATEMENT = "unsupported-statement"
    MISSING_WHERE_PARAMS = "missing-where-params"
    SUBQUERY_BLOCKED = "subquery-blocked"


@dataclass(frozen=True, slots=True)
class Classification:
    """Decision returned by :func:`classify`."""

    allowed: bool
    category: Category
    keyword: str | None = None
    reason: RejectionReason | None = None
    message: str | None = None


def _reject(
    reason: RejectionReason,
    message: str,
    *,
    keyword: str | None = None,
    category: Category = Category.UNSUPPORTED,
) -> Classification:
    return Classification(allowed=False, category=category, keyword=keyword, reason=reason, message=message)


def strip_comments(sql: str) -> str:
    """Remove ``/* ... */`` and ``-- ...`` comments."""

    return _LINE_COMMENT.sub(" ", _BLOCK_COMMENT.sub(" ", sql))


def has_multiple_statements(sql: str) -> bool:
    segments = sql.split(";")
    if len(segments) > 1 and not segments[-1].strip():
        segments = segments[:-1]
    return sum(1 for segment in segments if segment.strip()) > 1


def leading_keyword(sql: str) -> str:
    """First whitespace-delimited token after comments, lower-cased."""

    tokens = strip_comments(sql).split(None, 1)
    return tokens[0].lower() if tokens else ""


def classify(sql: str, params: Sequence[Any] | None = None, write_allowed: bool = False) -> Classification:
    """Decide whether ``sql`` may run and in which category."""

    if not sql or not sql.strip():
        return _reject(RejectionReason.EMPTY_QUERY, "Provide SQL to execute.")

    if has_multiple_statements(sql):
        return _reject(
            RejectionReason.MULTIPLE_STATEMENTS,
            "Multiple statements are not allowed. Submit one statement per call.",
        )

    if _EXECUTABLE_COMMENT.search(sql):
        return _reject(
            RejectionReason.EXECUTABLE_COMMENT,
            "Executable comments (/*! ... */) are not allowed.",
        )

    stripped = strip_comments(sql)
    keyword = leading_keyword(stripped)

    if keyword in READ_KEYWORDS:
        return Classification(allowed=True, category=Category.READ_ONLY, keyword=keyword)

    if keyword in WRITE_KEYWORDS and write_allowed:
        if keyword in PREDICATE_KEYWORDS and not params:
            return _reject(
                RejectionReason.MISSING_WHERE_PARAMS,
                f"{keyword.upper()} requires a parameterized WHERE clause with at least one bound value.",
                keyword=keyword,
            )
        if _SELECT_WORD.search(stripped):
            return _reject(
                RejectionReason.SUBQUERY_BLOCKED,
                f"{keyword.upper()} statements may not contain SELECT.",
                keyword=keyword,
            )
        return Classification(allowed=True, category=Category.WRITE, keyword=keyword)

    if keyword in WRITE_KEYWORDS:
        message = "Write operations are disabled. Set ALLOW_WRITES=true to enable INSERT, UPDATE and DELETE."
    else:
        message = f"Statement type {keyword.upper() or '<none>'} is not supported."
    return _reject(RejectionReason.UNSUPPORTED_STATEMENT, message, keyword=keyword or None)


def validate_identifier(name: str) -> str:
    """Return ``name`` if it is a plain MySQL identifier."""

    if not isinstance(name, str) or not _IDENTIFIER.match(name) or name.isdigit():
        raise IdentifierInvalidError(f"Invalid identifier: {name!r}")
    return name


__all__ = [
    "Category",
    "Classification",
    "READ_KEYWORDS",
    "RejectionReason",
    "WRITE_KEYWORDS",
    "classify",
    "has_multiple_statements",
    "leading_keyword",
    "strip_comments",
    "validate_identifier",
]
