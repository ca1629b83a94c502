"""Table schemas for the networked memory store."""

from typing import List

from .base import BaseSchema, ColumnDefinition, IndexDefinition


class MemoriesSchema(BaseSchema):
    """Primary record table: id, vector json, payload jsonb plus promoted columns."""

    def define_columns(self) -> List[ColumnDefinition]:
        return [
            ColumnDefinition(name="id", data_type="BIGINT", primary_key=True),
            ColumnDefinition(
                name="vector",
                data_type="TEXT",
                nullable=False,
                required=True,
                comment="Embedding as JSON text, used by the in-process scan fallback"
            ),
            ColumnDefinition(name="payload", data_type="JSONB", nullable=False, required=True),
            ColumnDefinition(name="user_id", data_type="VARCHAR(128)"),
            ColumnDefinition(name="agent_id", data_type="VARCHAR(128)"),
            ColumnDefinition(name="run_id", data_type="VARCHAR(128)"),
            ColumnDefinition(name="hash", data_type="VARCHAR(32)"),
            ColumnDefinition(name="category", data_type="VARCHAR(64)"),
            ColumnDefinition(name="created_at", data_type="VARCHAR(128)"),
            ColumnDefinition(name="updated_at", data_type="VARCHAR(128)"),
            ColumnDefinition(name="fulltext_content", data_type="TEXT"),
        ]

    def define_indexes(self) -> List[IndexDefinition]:
        return [
            IndexDefinition(name=f"idx_{self.table_name}_user_id", columns=["user_id"]),
            IndexDefinition(name=f"idx_{self.table_name}_agent_id", columns=["agent_id"]),
            IndexDefinition(name=f"idx_{self.table_name}_run_id", columns=["run_id"]),
        ]


class HistorySchema(BaseSchema):
    """Append-only audit trail of memory mutations."""

    def define_columns(self) -> List[ColumnDefinition]:
        return [
            ColumnDefinition(name="id", data_type="VARCHAR(64)", primary_key=True),
            ColumnDefinition(name="memory_id", data_type="VARCHAR(64)"),
            ColumnDefinition(name="old_memory", data_type="TEXT"),
            ColumnDefinition(name="new_memory", data_type="TEXT"),
            ColumnDefinition(name="event", data_type="VARCHAR(10)"),
            ColumnDefinition(name="created_at", data_type="BIGINT"),
            ColumnDefinition(name="updated_at", data_type="BIGINT"),
            ColumnDefinition(name="is_deleted", data_type="INTEGER", default="0"),
            ColumnDefinition(name="actor_id", data_type="VARCHAR(64)"),
            ColumnDefinition(name="role", data_type="VARCHAR(32)"),
        ]

    def define_indexes(self) -> List[IndexDefinition]:
        return [IndexDefinition(name=f"idx_{self.table_name}_memory_id", columns=["memory_id"])]
