"""Filter expression compiler.

Turns a nested filter expression into a parameterized SQL predicate:

    {"field": "value"}                      equality
    {"field": ["a", "b"]}                   membership
    {"field": {"gte": 1, "lte": 10}}        comparison (eq ne gt gte lt lte in nin like ilike)
    {"AND": [{...}, {...}]} / {"OR": [...]}  boolean combinators, nestable

Key resolution:
    "payload.xxx"   top-level payload field
    "metadata.xxx"  user metadata field
    promoted column when the backend has one, else the top-level payload field
    anything else   user metadata field

Keys containing characters outside alnum/underscore/hyphen are dropped from
the predicate instead of raising.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Collection, Dict, List, Optional

from loguru import logger
from psycopg.types.json import Jsonb

from ..models.memory import PROMOTED_COLUMNS

_SAFE_KEY = re.compile(r"^[A-Za-z0-9_\-]+$")

# Top-level payload keys that are addressed directly rather than through metadata.
TOP_LEVEL_KEYS = frozenset(PROMOTED_COLUMNS)

COMPARISON_OPERATORS = {
    "eq": "=",
    "ne": "<>",
    "gt": ">",
    "gte": ">=",
    "lt": "<",
    "lte": "<=",
}


def is_safe_key(key: Optional[str]) -> bool:
    return bool(key) and bool(_SAFE_KEY.match(key))


@dataclass
class ColumnRef:
    """How a filter key is addressed in SQL.

    ``expr`` is used for equality/comparison/membership, ``text_expr`` for
    pattern matching and null checks; ``bind`` adapts Python values to
    parameters comparable with ``expr``.
    """
    expr: str
    text_expr: str
    bind: Callable[[Any], Any]


@dataclass
class CompiledFilter:
    """A backend predicate plus its ordered parameters."""
    clause: str = ""
    params: List[Any] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.clause

    def where_sql(self) -> str:
        """Fragment to append after ``WHERE 1=1``."""
        return f" AND {self.clause}" if self.clause else ""


class FilterDialect(ABC):
    """Backend specifics used by the compiler."""

    placeholder: str = "?"

    def __init__(self, promoted_columns: Optional[Collection[str]] = None):
        self.promoted_columns = set(promoted_columns or ())

    @abstractmethod
    def payload_ref(self, *path: str) -> ColumnRef:
        """Reference a JSON path inside the payload document."""
        pass

    def column_ref(self, column: str) -> ColumnRef:
        return ColumnRef(expr=column, text_expr=column, bind=lambda v: None if v is None else str(v))


class SQLiteDialect(FilterDialect):
    """``json_extract`` over a TEXT payload column with ``?`` placeholders."""

    placeholder = "?"

    def payload_ref(self, *path: str) -> ColumnRef:
        expr = f"json_extract(payload, '$.{'.'.join(path)}')"
        return ColumnRef(expr=expr, text_expr=expr, bind=self._bind)

    @staticmethod
    def _bind(value: Any) -> Any:
        # json_extract yields 1/0 for JSON booleans
        if isinstance(value, bool):
            return 1 if value else 0
        return value


class PostgresDialect(FilterDialect):
    """``jsonb`` path operators with ``%s`` placeholders."""

    placeholder = "%s"

    def payload_ref(self, *path: str) -> ColumnRef:
        head = "payload" + "".join(f"->'{p}'" for p in path[:-1])
        expr = f"{head}->'{path[-1]}'"
        text_expr = f"{head}->>'{path[-1]}'"
        return ColumnRef(expr=expr, text_expr=text_expr, bind=lambda v: None if v is None else Jsonb(v))


class FilterCompiler:
    """Compile filter expressions plus scope identifiers into SQL predicates."""

    def __init__(self, dialect: FilterDialect):
        self.dialect = dialect

    def compile(
        self,
        filters: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None,
        agent_id: Optional[str] = None,
        run_id: Optional[str] = None,
    ) -> CompiledFilter:
        """Compile filters with the scope identifiers AND-ed in.

        Args:
            filters: Nested filter expression (may be None)
            user_id: Owner scope, applied when non-blank
            agent_id: Agent scope, applied when non-blank
            run_id: Session scope, applied when non-blank

        Returns:
            CompiledFilter with an empty clause when nothing applies
        """
        effective: Dict[str, Any] = dict(filters or {})
        for key, value in (("user_id", user_id), ("agent_id", agent_id), ("run_id", run_id)):
            if value is not None and str(value).strip():
                effective[key] = value

        params: List[Any] = []
        clause = self._condition(effective, params)
        return CompiledFilter(clause=clause or "", params=params)

    def _condition(self, node: Any, params: List[Any]) -> Optional[str]:
        if node is None:
            return None
        if isinstance(node, list):
            return self._join(" AND ", node, params)
        if not isinstance(node, dict):
            return None

        parts = []
        for key, value in node.items():
            if key is None or not str(key).strip():
                continue
            if key in ("AND", "OR"):
                cond = self._join_logical(key, value, params)
            else:
                cond = self._field_condition(str(key).strip(), value, params)
            if cond:
                parts.append(cond)
        return " AND ".join(parts) if parts else None

    def _join(self, separator: str, nodes: List[Any], params: List[Any]) -> Optional[str]:
        parts = []
        for sub in nodes:
            cond = self._condition(sub, params)
            if cond:
                parts.append(f"({cond})")
        return separator.join(parts) if parts else None

    def _join_logical(self, op: str, value: Any, params: List[Any]) -> Optional[str]:
        if isinstance(value, list):
            cond = self._join(f" {op} ", value, params)
        else:
            cond = self._condition(value, params)
        return f"({cond})" if cond else None

    def _field_condition(self, key: str, value: Any, params: List[Any]) -> Optional[str]:
        column = self.column_for_key(key)
        if column is None:
            return None
        if value is None:
            return f"{column.text_expr} IS NULL"
        if isinstance(value, (list, tuple)):
            return self._in_list(column, list(value), params, negate=False)
        if isinstance(value, dict):
            parts = []
            for op, operand in value.items():
                if op is None:
                    continue
                op = str(op).strip()
                if op.startswith("$"):
                    op = op[1:]
                cond = self._op_condition(column, op, operand, params)
                if cond:
                    parts.append(cond)
            return " AND ".join(parts) if parts else None
        params.append(column.bind(value))
        return f"{column.expr} = {self.dialect.placeholder}"

    def _op_condition(self, column: ColumnRef, op: str, value: Any, params: List[Any]) -> Optional[str]:
        ph = self.dialect.placeholder
        if op in COMPARISON_OPERATORS:
            params.append(column.bind(value))
            return f"{column.expr} {COMPARISON_OPERATORS[op]} {ph}"
        if op in ("in", "nin"):
            if not isinstance(value, (list, tuple)):
                return None
            return self._in_list(column, list(value), params, negate=(op == "nin"))
        if op == "like":
            params.append(None if value is None else str(value))
            return f"{column.text_expr} LIKE {ph}"
        if op == "ilike":
            params.append(None if value is None else str(value).lower())
            return f"LOWER({column.text_expr}) LIKE {ph}"
        logger.debug(f"FilterCompiler: dropping unsupported operator '{op}'")
        return None

    def _in_list(self, column: ColumnRef, values: List[Any], params: List[Any], negate: bool) -> Optional[str]:
        if not values:
            return None
        placeholders = ", ".join(self.dialect.placeholder for _ in values)
        params.extend(column.bind(v) for v in values)
        clause = f"{column.expr} IN ({placeholders})"
        return f"NOT ({clause})" if negate else clause

    def column_for_key(self, key: str) -> Optional[ColumnRef]:
        """Resolve a filter key to a column reference, or None if the key is unsafe."""
        if key.startswith("payload."):
            return self._json_ref(key[len("payload."):].strip())
        if key.startswith("metadata."):
            return self._json_ref("metadata", key[len("metadata."):].strip())
        if key in TOP_LEVEL_KEYS:
            if key in self.dialect.promoted_columns:
                return self.dialect.column_ref(key)
            return self._json_ref(key)
        return self._json_ref("metadata", key)

    def _json_ref(self, *path: str) -> Optional[ColumnRef]:
        if not is_safe_key(path[-1]):
            logger.debug(f"FilterCompiler: dropping unsafe filter key '{path[-1]}'")
            return None
        return self.dialect.payload_ref(*path)
