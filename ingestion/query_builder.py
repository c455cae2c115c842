"""
Extraction query construction for pipeline runs.

The incremental predicate is spliced into the outermost SELECT:
- AND-ed onto an existing top-level WHERE (parenthesizing a top-level OR)
- otherwise added as a new WHERE
- always ahead of a trailing GROUP BY / HAVING / ORDER BY / LIMIT / OFFSET / FETCH

Parentheses and quoted text are skipped while looking for clause keywords,
so subqueries and string literals are left untouched. The watermark value
itself is never interpolated; it travels as the :watermark bind parameter.
Colons already in the query are escaped (\\:) so SQLAlchemy text() keeps
them literal instead of reading them as bind parameters.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple
import re

WATERMARK_PARAM = "watermark"

_CLAUSE_RE = re.compile(
    r"(WHERE|GROUP\s+BY|HAVING|ORDER\s+BY|LIMIT|OFFSET|FETCH|UNION|INTERSECT|EXCEPT|OR)\b",
    re.IGNORECASE
)
_TAIL_CLAUSES = ("GROUP BY", "HAVING", "ORDER BY", "LIMIT", "OFFSET", "FETCH")
_SET_OPERATORS = ("UNION", "INTERSECT", "EXCEPT")
_QUOTE_CLOSERS = {"'": "'", '"': '"', "`": "`", "[": "]"}


@dataclass(frozen=True)
class ExtractionQuery:
    """Query text plus its bound parameters"""
    text: str
    params: Dict[str, Any] = field(default_factory=dict)

    def render(self) -> str:
        """Human-readable form with parameters inlined as SQL literals (for logs and tests)."""
        rendered = self.text
        for name, value in self.params.items():
            literal = sql_literal(value)
            rendered = re.sub(rf"(?<!\\):{re.escape(name)}\b", lambda _m: literal, rendered)
        return rendered.replace("\\:", ":")


def sql_literal(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, datetime):
        return f"'{value.isoformat(sep=' ', timespec='seconds')}'"
    if isinstance(value, date):
        return f"'{value.isoformat()}'"
    if isinstance(value, (int, float)):
        return str(value)
    escaped = str(value).replace("'", "''")
    return f"'{escaped}'"


def escape_colons(sql: str) -> str:
    """Mark every colon in raw SQL as literal for SQLAlchemy text()."""
    return sql.replace(":", "\\:")


def effective_query(source_query: Optional[str], default_query: str) -> str:
    """A pipeline's own query, or the connector's full scan when it is blank."""
    if source_query and source_query.strip():
        return source_query.strip()
    return default_query


def top_level_clauses(sql: str) -> List[Tuple[int, int, str]]:
    """
    Find clause keywords that sit outside parentheses and quoted text.

    Returns:
        (start, end, keyword) tuples; keyword is upper-case with single spaces
    """
    found = []
    depth = 0
    closer = None
    i = 0
    length = len(sql)

    while i < length:
        ch = sql[i]

        if closer:
            if ch == closer:
                # Doubled closer is an escaped quote
                if i + 1 < length and sql[i + 1] == closer:
                    i += 2
                    continue
                closer = None
            i += 1
            continue

        if ch in _QUOTE_CLOSERS:
            closer = _QUOTE_CLOSERS[ch]
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth = max(depth - 1, 0)
        elif depth == 0 and (i == 0 or not (sql[i - 1].isalnum() or sql[i - 1] in "_.")):
            match = _CLAUSE_RE.match(sql, i)
            if match:
                keyword = " ".join(match.group(1).upper().split())
                found.append((match.start(), match.end(), keyword))
                i = match.end()
                continue
        i += 1

    return found


def add_watermark_predicate(query: str, column: str, param: str = WATERMARK_PARAM) -> str:
    """
    Restrict a SELECT to rows where column > :param.

    Example:
        >>> add_watermark_predicate("SELECT * FROM events WHERE region='EU'", "updated_at")
        "SELECT * FROM events WHERE region='EU' AND updated_at > :watermark"
    """
    sql = escape_colons(query.strip().rstrip(";").rstrip())
    predicate = f"{column} > :{param}"
    clauses = top_level_clauses(sql)

    if any(keyword in _SET_OPERATORS for _, _, keyword in clauses):
        return f"SELECT * FROM ({sql}) AS incremental_source WHERE {predicate}"

    where = next((c for c in clauses if c[2] == "WHERE"), None)
    search_from = where[1] if where else 0
    tail_start = next(
        (start for start, _, keyword in clauses if keyword in _TAIL_CLAUSES and start >= search_from),
        len(sql)
    )
    tail = sql[tail_start:].strip()

    if where:
        condition = sql[where[1]:tail_start].strip()
        if any(keyword == "OR" for _, _, keyword in top_level_clauses(condition)):
            condition = f"({condition})"
        spliced = f"{sql[:where[0]]}WHERE {condition} AND {predicate}"
    else:
        spliced = f"{sql[:tail_start].rstrip()} WHERE {predicate}"

    return f"{spliced} {tail}" if tail else spliced
