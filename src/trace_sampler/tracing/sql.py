"""Literal stripping for captured SQL text."""

from __future__ import annotations

import re

PLACEHOLDER = "?"

# Quoted strings first so digits inside them are consumed with the literal.
_LITERALS = re.compile(
    r"""
    '(?:[^'\\]|\\.|'')*'            # single-quoted string, '' and \' escapes
    | "(?:[^"\\]|\\.)*"             # double-quoted string
    | \b0x[0-9a-fA-F]+\b            # hex literal
    | (?<![\w.])-?\d+(?:\.\d+)?(?:[eE][-+]?\d+)?\b   # numeric literal
    """,
    re.VERBOSE,
)


def obfuscate_sql(sql: str) -> str:
    """Replace string and numeric literals in *sql* with ``?``.

    The statement's shape (keywords, identifiers, operators) is preserved::

        >>> obfuscate_sql("SELECT * from Jim where id=66")
        'SELECT * from Jim where id=?'
    """
    return _LITERALS.sub(PLACEHOLDER, sql)
