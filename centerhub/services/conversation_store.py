"""Conversation and message persistence on a tenant's storage handle."""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import and_, delete, or_, select, update

from centerhub.infra.database import StorageHandle, as_utc, conversations, messages, tool_call_records
from centerhub.infra.error_handler import ConversationAccessError, ConversationNotFoundError, PersistenceError
from centerhub.models.message import ChatMessage, ConversationPage, ConversationSummary

logger = logging.getLogger(__name__)

PAGE_SIZE = 15
DELETE_BATCH_SIZE = 50
TITLE_LENGTH = 40


def make_title(prompt_text: str) -> str:
    """First 40 characters of the prompt, with '...' when truncated."""
    text = " ".join(prompt_text.split())
    if len(text) > TITLE_LENGTH:
        return text[:TITLE_LENGTH] + "..."
    return text or "New conversation"


def encode_cursor(last_activity_at: datetime, conversation_id: str) -> str:
    """Keyset position of the last item on a page: full-precision timestamp and id."""
    return f"{as_utc(last_activity_at).isoformat()}|{conversation_id}"


def decode_cursor(cursor: str) -> Tuple[datetime, str]:
    timestamp, sep, conversation_id = (cursor or "").partition("|")
    if not sep or not conversation_id:
        raise ValueError(f"Invalid conversation cursor: {cursor!r}")
    try:
        return as_utc(datetime.fromisoformat(timestamp)), conversation_id
    except ValueError as e:
        raise ValueError(f"Invalid conversation cursor: {cursor!r}") from e


class ConversationStore:
    """Synchronous store; async callers run it with asyncio.to_thread."""

    def __init__(self, handle: StorageHandle):
        self.handle = handle

    def create_conversation(
        self,
        conversation_id: str,
        owner_id: str,
        tenant_id: str,
        title: str,
        created_at: Optional[datetime] = None,
    ) -> ConversationSummary:
        now = created_at or datetime.now(timezone.utc)
        try:
            with self.handle.session() as session:
                session.execute(
                    conversations.insert().values(
                        id=conversation_id,
                        tenant_id=tenant_id,
                        owner_id=owner_id,
                        title=title,
                        created_at=now,
                        last_activity_at=now,
                    )
                )
        except Exception as e:
            raise PersistenceError(f"Failed to create conversation {conversation_id}: {e}") from e

        logger.info(f"Created conversation {conversation_id} for {owner_id} in {tenant_id}")
        return ConversationSummary(
            id=conversation_id,
            title=title,
            owner_id=owner_id,
            tenant_id=tenant_id,
            created_at=now,
            last_activity_at=now,
        )

    def get_conversation(self, conversation_id: str) -> Optional[ConversationSummary]:
        with self.handle.session() as session:
            row = session.execute(
                select(conversations).where(conversations.c.id == conversation_id)
            ).fetchone()
        if row is None:
            return None
        return self._summary(row)

    def save_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        data: Optional[Dict[str, Any]] = None,
        timestamp: Optional[datetime] = None,
        message_id: Optional[str] = None,
    ) -> ChatMessage:
        message = ChatMessage(
            id=message_id or str(uuid.uuid4()),
            role=role,
            content=content,
            timestamp=timestamp or datetime.now(timezone.utc),
            data=data,
        )
        try:
            with self.handle.session() as session:
                session.execute(
                    messages.insert().values(
                        id=message.id,
                        conversation_id=conversation_id,
                        role=message.role,
                        content=message.content,
                        data=message.data,
                        created_at=message.timestamp,
                    )
                )
        except Exception as e:
            raise PersistenceError(f"Failed to save {role} message in {conversation_id}: {e}") from e
        return message

    def get_recent_history(
        self,
        conversation_id: str,
        limit: int,
        before: Optional[datetime] = None,
    ) -> List[ChatMessage]:
        """Last `limit` messages in ascending order, optionally strictly before a timestamp."""
        query = select(messages).where(messages.c.conversation_id == conversation_id)
        if before is not None:
            query = query.where(messages.c.created_at < before)
        query = query.order_by(messages.c.created_at.desc()).limit(limit)

        with self.handle.session() as session:
            rows = session.execute(query).fetchall()
        return [self._message(row) for row in reversed(rows)]

    def list_messages(self, conversation_id: str) -> List[ChatMessage]:
        with self.handle.session() as session:
            rows = session.execute(
                select(messages)
                .where(messages.c.conversation_id == conversation_id)
                .order_by(messages.c.created_at.asc())
            ).fetchall()
        return [self._message(row) for row in rows]

    def touch(self, conversation_id: str, when: Optional[datetime] = None) -> None:
        """Update the conversation's last-activity marker."""
        try:
            with self.handle.session() as session:
                session.execute(
                    update(conversations)
                    .where(conversations.c.id == conversation_id)
                    .values(last_activity_at=when or datetime.now(timezone.utc))
                )
        except Exception as e:
            raise PersistenceError(f"Failed to update activity of {conversation_id}: {e}") from e

    def list_conversations(
        self,
        owner_id: str,
        cursor: Optional[str] = None,
        page_size: int = PAGE_SIZE,
    ) -> ConversationPage:
        """
        Conversations of an owner, most recent activity first.

        Ordered by (last_activity_at, id) descending; ties on the timestamp
        are broken by id so no conversation falls between two pages.

        Args:
            owner_id: Owner ID
            cursor: Opaque cursor from a previous page
            page_size: Items per page

        Returns:
            ConversationPage; next_cursor is None on the last page
        """
        query = select(conversations).where(conversations.c.owner_id == owner_id)
        if cursor:
            last_activity_at, last_id = decode_cursor(cursor)
            query = query.where(
                or_(
                    conversations.c.last_activity_at < last_activity_at,
                    and_(
                        conversations.c.last_activity_at == last_activity_at,
                        conversations.c.id < last_id,
                    ),
                )
            )
        query = query.order_by(
            conversations.c.last_activity_at.desc(),
            conversations.c.id.desc(),
        ).limit(page_size)

        with self.handle.session() as session:
            rows = session.execute(query).fetchall()

        items = [self._summary(row) for row in rows]
        next_cursor = None
        if len(items) == page_size:
            next_cursor = encode_cursor(items[-1].last_activity_at, items[-1].id)
        return ConversationPage(items=items, next_cursor=next_cursor)

    def delete_conversation(self, conversation_id: str, owner_id: str) -> int:
        """
        Delete a conversation, its messages and its tool-call history.

        Returns:
            Number of messages deleted

        Raises:
            ConversationNotFoundError: If the conversation does not exist
            ConversationAccessError: If owner_id does not own it
        """
        conversation = self.get_conversation(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        if conversation.owner_id != owner_id:
            raise ConversationAccessError(conversation_id, owner_id)

        deleted = 0
        while True:
            with self.handle.session() as session:
                ids = session.execute(
                    select(messages.c.id)
                    .where(messages.c.conversation_id == conversation_id)
                    .limit(DELETE_BATCH_SIZE)
                ).scalars().all()
                if not ids:
                    break
                session.execute(delete(messages).where(messages.c.id.in_(ids)))
            deleted += len(ids)

        with self.handle.session() as session:
            session.execute(delete(tool_call_records).where(tool_call_records.c.conversation_id == conversation_id))
            session.execute(delete(conversations).where(conversations.c.id == conversation_id))

        logger.info(f"Deleted conversation {conversation_id} ({deleted} messages)")
        return deleted

    @staticmethod
    def _summary(row) -> ConversationSummary:
        return ConversationSummary(
            id=row.id,
            title=row.title,
            owner_id=row.owner_id,
            tenant_id=row.tenant_id,
            created_at=as_utc(row.created_at),
            last_activity_at=as_utc(row.last_activity_at),
        )

    @staticmethod
    def _message(row) -> ChatMessage:
        return ChatMessage(
            id=row.id,
            role=row.role,
            content=row.content,
            timestamp=as_utc(row.created_at),
            data=row.data,
        )
