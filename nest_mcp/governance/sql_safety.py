"""
Deterministic SQL safety checks for caller-supplied raw queries.

These checks run before a raw query reaches DuckDB.  They operate purely on
the SQL text; the read-only connection remains the real enforcement.

Checks performed:
  1. SQL must be a read statement (SELECT, WITH, FROM, DESCRIBE, SHOW,
     SUMMARIZE, EXPLAIN)
  2. Single statement only (one trailing ';' is tolerated)
  3. No dangerous keywords (DDL / DML / ATTACH / INSTALL / PRAGMA / SET ...)
  4. No SQL comments (--, /* */)

Keyword and comment checks ignore the contents of string literals and quoted
identifiers, so a filter such as ``company_purpose ILIKE '%update%'`` is accepted.
"""
from __future__ import annotations

import re

from nest_mcp.core.errors import UnsafeQuery
from nest_mcp.core.logging import get_logger
from nest_mcp.core.utils import strip_statement_terminator

logger = get_logger(__name__)

# ── Compiled patterns ────────────────────────────────────

# String literals and double-quoted identifiers, matched left to right.
_QUOTED = re.compile(r"'(?:[^']|'')*'|\"(?:[^\"]|\"\")*\"")

_READ_PREFIX = re.compile(
    r"^\s*\(*\s*(SELECT|WITH|FROM|DESCRIBE|SHOW|SUMMARIZE|EXPLAIN)\b",
    re.IGNORECASE,
)

_DANGEROUS_KW = re.compile(
    r"\b(DROP|ALTER|TRUNCATE|INSERT|UPDATE|DELETE|MERGE|GRANT|REVOKE|"
    r"CREATE|REPLACE\s+INTO|COPY|ATTACH|DETACH|INSTALL|LOAD|PRAGMA|"
    r"EXPORT|IMPORT|CHECKPOINT|VACUUM|CALL|SET|RESET|USE)\b",
    re.IGNORECASE,
)

_COMMENT_INLINE = re.compile(r"--")
_COMMENT_BLOCK = re.compile(r"/\*|\*/")


def _mask_literals(sql: str) -> str:
    """Empty out string literals and double-quoted identifiers."""
    return _QUOTED.sub(lambda m: m.group(0)[0] * 2, sql)


def check_sql_safety(sql: str) -> list[str]:
    """Return a list of safety violations (empty list = safe)."""
    errors: list[str] = []
    statement = strip_statement_terminator(sql)

    if not statement:
        return ["SQL is empty."]

    masked = _mask_literals(statement)

    # ── 1. Read statement ────────────────────────────
    if not _READ_PREFIX.match(masked):
        errors.append("SQL must be a read-only statement (SELECT, WITH, DESCRIBE, SHOW, SUMMARIZE).")

    # ── 2. No multi-statement ────────────────────────
    if ";" in masked:
        errors.append("Multi-statement SQL is not allowed.")

    # ── 3. No dangerous keywords ─────────────────────
    m = _DANGEROUS_KW.search(masked)
    if m:
        errors.append(f"Dangerous keyword detected: '{' '.join(m.group(1).upper().split())}'.")

    # ── 4. No SQL comments ───────────────────────────
    if _COMMENT_INLINE.search(masked):
        errors.append("Inline comments (--) are not allowed.")
    if _COMMENT_BLOCK.search(masked):
        errors.append("Block comments (/* */) are not allowed.")

    if errors:
        logger.warning("SQL safety violations: %s", errors)
    return errors


def ensure_sql_safe(sql: str) -> str:
    """Return the statement without its terminator, or raise ``UnsafeQuery``."""
    errors = check_sql_safety(sql)
    if errors:
        raise UnsafeQuery(errors)
    return strip_statement_terminator(sql)
