"""Per-tenant storage handles and table definitions."""

import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Generator, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    text,
)
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from centerhub.infra.config import config

logger = logging.getLogger(__name__)

metadata = MetaData()

conversations = Table(
    "conversations",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("tenant_id", String(64), nullable=False),
    Column("owner_id", String(128), nullable=False),
    Column("title", String(64), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("last_activity_at", DateTime(timezone=True), nullable=False),
    Index("ix_conversations_owner_activity", "owner_id", "last_activity_at"),
)

messages = Table(
    "messages",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("conversation_id", String(64), ForeignKey("conversations.id"), nullable=False),
    Column("role", String(16), nullable=False),
    Column("content", Text, nullable=False),
    Column("data", JSON, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Index("ix_messages_conversation_created", "conversation_id", "created_at"),
)

tool_call_records = Table(
    "tool_call_records",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("conversation_id", String(64), nullable=False),
    Column("call_id", String(128), nullable=True),
    Column("tool_name", String(128), nullable=False),
    Column("arguments", JSON, nullable=False),
    Column("success", Boolean, nullable=False),
    Column("payload", JSON, nullable=True),
    Column("error", Text, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Index("ix_tool_call_records_conversation", "conversation_id", "tool_name"),
)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Backends without timezone support return naive datetimes; treat them as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _engine_kwargs(url: str) -> dict:
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite":
        kwargs = {"connect_args": {"check_same_thread": False}}
        if parsed.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
        return kwargs
    return {
        "poolclass": QueuePool,
        "pool_size": 10,  # Number of connections to maintain
        "max_overflow": 20,  # Max connections beyond pool_size
        "pool_timeout": 30,  # Seconds to wait for connection from pool
        "pool_recycle": 3600,  # Recycle connections after 1 hour
        "pool_pre_ping": True,  # Verify connections before using
    }


class StorageHandle:
    """
    Storage backend of one tenant.

    Owns an engine and session factory. The schema is created on first use.
    """

    def __init__(self, tenant_id: str, url: str):
        self.tenant_id = tenant_id
        self.url = url
        self.engine = create_engine(url, echo=config.DEBUG, **_engine_kwargs(url))
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        self._schema_ready = False
        self._schema_lock = threading.Lock()

    def ensure_schema(self) -> None:
        if self._schema_ready:
            return
        with self._schema_lock:
            if not self._schema_ready:
                metadata.create_all(self.engine)
                self._schema_ready = True
                logger.debug(f"Schema ready for tenant {self.tenant_id}")

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """
        Get a database session for this tenant.

        Commits on success, rolls back on error.
        """
        self.ensure_schema()
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def ping(self) -> bool:
        """Run SELECT 1 against the backend. Raises on failure."""
        with self.engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        return True

    def dispose(self) -> None:
        self.engine.dispose()
