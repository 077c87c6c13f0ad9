"""Pytest 配置文件。

提供测试 Fixtures 和配置。
"""

import os
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from src.config import clear_settings_cache, get_settings
from src.database.models import Base
from src.feed.infrastructure.mapper import to_epoch_millis
from src.feed.infrastructure.repository import COLLECTION_ENTRIES
from src.store.base import Document, DocumentStore, StructuredQuery, WriteBatch
from src.store.memory import InMemoryDocumentStore
from src.store.sql import SqlDocumentStore

# 测试使用的固定“当前时间”
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def reset_env_before_each_test():
    """在每个测试前后重置环境变量和配置缓存。"""
    original_env = os.environ.copy()
    clear_settings_cache()

    yield

    os.environ.clear()
    os.environ.update(original_env)
    clear_settings_cache()


@pytest.fixture(scope="function")
def test_settings():
    """测试配置 Fixture。"""
    os.environ["DOCUMENT_STORE_BACKEND"] = "memory"
    os.environ["DATABASE_URL"] = "sqlite:///:memory:"
    os.environ["LOG_LEVEL"] = "WARNING"  # 测试时减少日志输出
    clear_settings_cache()

    yield get_settings()

    clear_settings_cache()


def entry_doc(
    level: int,
    tags: list[str] | None = None,
    created_at: datetime = NOW,
    title: str = "",
    body: str = "",
    **extra: Any,
) -> dict[str, Any]:
    """构造规范字段名的条目文档。"""
    data: dict[str, Any] = {
        "anonymousUsername": "anon",
        "title": title,
        "description": body,
        "chaosLevel": level,
        "tags": list(tags or []),
        "miniWins": [],
        "createdAt": to_epoch_millis(created_at),
        "supportCount": 0,
        "twinCount": 0,
        "isReported": False,
        "isModerated": False,
    }
    data.update(extra)
    return data


@pytest.fixture
def memory_store() -> InMemoryDocumentStore:
    """空的内存文档存储。"""
    return InMemoryDocumentStore()


@pytest.fixture
def seeded_store() -> InMemoryDocumentStore:
    """包含 40 个条目的内存存储。

    e00-e24: 最近一周内，强度 4-7，标签含 work（共 25 个，每小时一个）
    e25-e29: 最近一周内，强度 9，标签 work
    e30-e34: 最近一周内，强度 5，标签 family
    e35-e39: 十天前，强度 5，标签 work
    """
    store = InMemoryDocumentStore()
    for i in range(25):
        store.seed(
            COLLECTION_ENTRIES,
            f"e{i:02d}",
            entry_doc(4 + i % 4, ["work", "stress"], NOW - timedelta(hours=i + 1)),
        )
    for i in range(25, 30):
        store.seed(COLLECTION_ENTRIES, f"e{i:02d}", entry_doc(9, ["work"], NOW - timedelta(hours=i + 1)))
    for i in range(30, 35):
        store.seed(COLLECTION_ENTRIES, f"e{i:02d}", entry_doc(5, ["family"], NOW - timedelta(hours=i + 1)))
    for i in range(35, 40):
        store.seed(COLLECTION_ENTRIES, f"e{i:02d}", entry_doc(5, ["work"], NOW - timedelta(days=10)))
    return store


class CountingStore(DocumentStore):
    """记录调用次数的存储包装，可注入失败。"""

    def __init__(self, inner: DocumentStore) -> None:
        self.inner = inner
        self.atomic_batches = inner.atomic_batches
        self.queries: list[StructuredQuery] = []
        self.commits: list[WriteBatch] = []
        self.fail_queries_with: Exception | None = None
        self.fail_commits_with: Exception | None = None

    @property
    def query_count(self) -> int:
        return len(self.queries)

    async def query(self, query: StructuredQuery) -> list[Document]:
        self.queries.append(query)
        if self.fail_queries_with is not None:
            raise self.fail_queries_with
        return await self.inner.query(query)

    async def get(self, collection: str, doc_id: str) -> Document | None:
        return await self.inner.get(collection, doc_id)

    async def commit(self, batch: WriteBatch) -> None:
        self.commits.append(batch)
        if self.fail_commits_with is not None:
            raise self.fail_commits_with
        await self.inner.commit(batch)

    async def count(self, collection: str) -> int:
        return await self.inner.count(collection)


@pytest.fixture
def counting_store(seeded_store) -> CountingStore:
    """包装 seeded_store 的计数存储。"""
    return CountingStore(seeded_store)


@pytest.fixture(scope="function")
async def sql_session_maker():
    """异步 SQL 会话工厂 Fixture。

    每个测试函数使用独立的内存数据库。
    """
    test_engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # 创建所有表
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)

    # 清理
    await test_engine.dispose()


@pytest.fixture
async def sql_store(sql_session_maker) -> SqlDocumentStore:
    """基于内存 SQLite 的 SQL 文档存储。"""
    return SqlDocumentStore(sql_session_maker)


@pytest.fixture
def now() -> datetime:
    """固定的当前时间。"""
    return NOW


@pytest.fixture
def make_doc():
    """条目文档工厂。"""
    return entry_doc


@pytest.fixture
def wrap_counting():
    """把任意存储包装为 CountingStore。"""
    return CountingStore


@pytest.fixture
async def api_client(seeded_store, test_settings):
    """异步 HTTP 客户端 Fixture。

    应用状态中的服务使用 seeded_store，不经过 lifespan。
    """
    from httpx import ASGITransport, AsyncClient

    from src.feed.services.feed_service import FeedService
    from src.main import app
    from src.reaction.infrastructure.repository import ReactionRepository
    from src.reaction.services.reaction_controller import ReactionController

    app.state.store = seeded_store
    app.state.feed_service = FeedService.from_settings(seeded_store, test_settings)
    app.state.reaction_controller = ReactionController(ReactionRepository(seeded_store))

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
