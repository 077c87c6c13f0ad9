"""数据库模型模块。

定义 SQL 文档存储使用的 SQLAlchemy ORM 模型。
"""

from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime, Index, Integer, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """SQLAlchemy 声明式基类。"""

    pass


class DocumentOrm(Base):
    """文档 ORM 模型。

    对应 documents 表，以 JSON 形式保存任意集合中的文档。
    """

    __tablename__ = "documents"

    collection: Mapped[str] = mapped_column(
        String(100), primary_key=True, comment="集合名称"
    )
    doc_id: Mapped[str] = mapped_column(
        String(255), primary_key=True, comment="文档 ID"
    )
    data: Mapped[dict] = mapped_column(JSON, nullable=False, comment="文档内容")
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        nullable=False,
        comment="最后写入时间",
    )


class DocumentArrayValueOrm(Base):
    """数组字段索引 ORM 模型。

    文档中每个列表字段的每个元素对应一行，用于数组成员查询。
    """

    __tablename__ = "document_array_values"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    collection: Mapped[str] = mapped_column(String(100), nullable=False, comment="集合名称")
    doc_id: Mapped[str] = mapped_column(String(255), nullable=False, comment="文档 ID")
    field: Mapped[str] = mapped_column(String(100), nullable=False, comment="字段名")
    value: Mapped[str] = mapped_column(String(500), nullable=False, comment="JSON 编码的元素值")

    __table_args__ = (
        Index("ix_array_values_lookup", "collection", "field", "value"),
        Index("ix_array_values_doc", "collection", "doc_id"),
    )
