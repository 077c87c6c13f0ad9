"""create_document_tables

创建文档存储表：documents 保存 JSON 文档，document_array_values 保存列表字段的元素索引。

Revision ID: 3f9a2c1d7e40
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "3f9a2c1d7e40"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """创建 documents 和 document_array_values 表。"""
    op.create_table(
        "documents",
        sa.Column("collection", sa.String(100), primary_key=True, comment="集合名称"),
        sa.Column("doc_id", sa.String(255), primary_key=True, comment="文档 ID"),
        sa.Column("data", sa.JSON, nullable=False, comment="文档内容"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now(), comment="最后写入时间"),
        comment="文档表",
    )
    op.create_table(
        "document_array_values",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("collection", sa.String(100), nullable=False, comment="集合名称"),
        sa.Column("doc_id", sa.String(255), nullable=False, comment="文档 ID"),
        sa.Column("field", sa.String(100), nullable=False, comment="字段名"),
        sa.Column("value", sa.String(500), nullable=False, comment="JSON 编码的元素值"),
        comment="数组字段索引表",
    )
    op.create_index(
        "ix_array_values_lookup",
        "document_array_values",
        ["collection", "field", "value"],
    )
    op.create_index(
        "ix_array_values_doc",
        "document_array_values",
        ["collection", "doc_id"],
    )


def downgrade() -> None:
    """删除文档存储表。"""
    op.drop_index("ix_array_values_doc", table_name="document_array_values")
    op.drop_index("ix_array_values_lookup", table_name="document_array_values")
    op.drop_table("document_array_values")
    op.drop_table("documents")
