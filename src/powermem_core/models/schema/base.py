"""Base schema class for database table definitions."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional


@dataclass
class ColumnDefinition:
    """Definition of a database column."""
    name: str
    data_type: str
    nullable: bool = True
    default: Optional[str] = None
    primary_key: bool = False
    # Required columns fail initialization when they cannot be added
    required: bool = False
    comment: Optional[str] = None


@dataclass
class IndexDefinition:
    """Definition of a database index."""
    name: str
    columns: List[str]
    index_type: str = "btree"  # btree, gin, hnsw, ivfflat
    unique: bool = False
    with_options: Optional[Dict[str, Any]] = None
    comment: Optional[str] = None


class BaseSchema(ABC):
    """Base class for table schemas whose name is chosen at runtime."""

    def __init__(self, table_name: str):
        self.table_name = table_name
        self.columns = self.define_columns()
        self.indexes = self.define_indexes()

    @abstractmethod
    def define_columns(self) -> List[ColumnDefinition]:
        """Define table columns."""
        pass

    def define_indexes(self) -> List[IndexDefinition]:
        """Define table indexes. Override in subclasses if needed."""
        return []

    def column_sql(self, col: ColumnDefinition) -> str:
        col_def = f"{col.name} {col.data_type}"
        if col.primary_key:
            col_def += " PRIMARY KEY"
        elif not col.nullable:
            col_def += " NOT NULL"
        if col.default is not None:
            col_def += f" DEFAULT {col.default}"
        return col_def

    def generate_create_table_sql(self) -> str:
        """Generate CREATE TABLE SQL statement."""
        column_definitions = [f"    {self.column_sql(col)}" for col in self.columns]
        return "\n".join([
            f"CREATE TABLE IF NOT EXISTS {self.table_name} (",
            ",\n".join(column_definitions),
            ")",
        ])

    def generate_add_column_sql(self, existing: Iterable[str]) -> List[str]:
        """ALTER statements for columns missing from an existing table."""
        present = {name.lower() for name in existing}
        statements = []
        for col in self.columns:
            if col.name.lower() in present or col.primary_key:
                continue
            # A NOT NULL column cannot be added to a populated table without a default
            nullable = ColumnDefinition(name=col.name, data_type=col.data_type, default=col.default)
            statements.append(
                f"ALTER TABLE {self.table_name} ADD COLUMN IF NOT EXISTS {self.column_sql(nullable)}"
            )
        return statements

    def generate_index_sql(self, idx: IndexDefinition) -> str:
        """Generate a CREATE INDEX SQL statement."""
        sql = "CREATE UNIQUE" if idx.unique else "CREATE"
        sql += f" INDEX IF NOT EXISTS {idx.name} ON {self.table_name}"
        if idx.index_type != "btree":
            sql += f" USING {idx.index_type}"
        sql += f" ({', '.join(idx.columns)})"
        if idx.with_options:
            options = []
            for key, value in idx.with_options.items():
                if isinstance(value, str):
                    options.append(f"{key} = '{value}'")
                else:
                    options.append(f"{key} = {value}")
            sql += f" WITH ({', '.join(options)})"
        return sql

    def generate_indexes_sql(self) -> List[str]:
        return [self.generate_index_sql(idx) for idx in self.indexes]

    @property
    def required_columns(self) -> List[str]:
        return [col.name for col in self.columns if col.required or col.primary_key]
