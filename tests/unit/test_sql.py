"""Tests for SQL literal obfuscation."""

from __future__ import annotations

import pytest

from trace_sampler.tracing.sql import obfuscate_sql


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("SELECT * from Jim where id=66", "SELECT * from Jim where id=?"),
        (
            "SELECT * FROM sandwiches WHERE bread = 'hallah'",
            "SELECT * FROM sandwiches WHERE bread = ?",
        ),
        ("UPDATE t SET price = 9.99 WHERE id = -3", "UPDATE t SET price = ? WHERE id = ?"),
        ("SELECT * FROM t WHERE name = 'O''Brien'", "SELECT * FROM t WHERE name = ?"),
        ('SELECT * FROM t WHERE name = "bob"', "SELECT * FROM t WHERE name = ?"),
        ("SELECT * FROM t WHERE flags = 0xFF", "SELECT * FROM t WHERE flags = ?"),
        ("INSERT INTO t (a, b) VALUES (1, 'x')", "INSERT INTO t (a, b) VALUES (?, ?)"),
    ],
)
def test_literals_replaced(raw: str, expected: str) -> None:
    assert obfuscate_sql(raw) == expected


def test_identifiers_with_digits_preserved() -> None:
    assert obfuscate_sql("SELECT col1 FROM table2 t2") == "SELECT col1 FROM table2 t2"


def test_no_literals_unchanged() -> None:
    sql = "SELECT * FROM users"
    assert obfuscate_sql(sql) == sql
