"""
Async database service for users, conversations, messages and admin configuration.

Wraps a SQLAlchemy async engine (PostgreSQL via asyncpg or SQLite via
aiosqlite). Every operation opens its own short-lived session. Unlike
lookups, write failures propagate to the caller so the request fails with a
generic 500 instead of silently losing data.
"""

import logging
from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import event, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from chatdesk.core.config import settings
from chatdesk.models import AdminConfig, Base, Conversation, Message, User

logger = logging.getLogger("chatdesk.database")


def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """
    Async database service.

    Features:
    - Async connection pooling
    - Automatic table creation
    - Atomic token usage increments
    - Single-active-row admin configuration
    """

    def __init__(self):
        self.engine = None
        self.session_factory: async_sessionmaker[AsyncSession] | None = None
        self._connected = False

    @property
    def is_available(self) -> bool:
        """Check if database is configured and connected."""
        return self._connected and self.engine is not None

    async def connect(self) -> bool:
        """
        Connect to the configured database and create tables if needed.

        Returns:
            True if connection successful, False otherwise.
        """
        url = settings.DATABASE_URL
        is_sqlite = url.startswith("sqlite")

        try:
            engine_kwargs: dict[str, Any] = {"echo": False}
            if not is_sqlite:
                engine_kwargs.update(pool_size=5, max_overflow=10)
            self.engine = create_async_engine(url, **engine_kwargs)

            if is_sqlite:
                event.listen(self.engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

            self.session_factory = async_sessionmaker(
                self.engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )

            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

            self._connected = True
            logger.info("Connected to database: %s", settings.sanitize_url(url))
            return True
        except Exception as e:
            logger.error("Failed to connect to database: %s", e)
            self.engine = None
            self.session_factory = None
            self._connected = False
            return False

    async def close(self) -> None:
        """Close database connection pool."""
        if self.engine:
            await self.engine.dispose()
            self._connected = False
            logger.info("Database connection closed")

    def _session(self) -> AsyncSession:
        if not self.is_available or not self.session_factory:
            raise RuntimeError("Database not connected")
        return self.session_factory()

    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Get an async database session.

        Yields:
            AsyncSession for database operations.
        """
        async with self._session() as session:
            yield session

    # =========================================================================
    # Users
    # =========================================================================

    async def get_user(self, user_id: str) -> User | None:
        async with self._session() as session:
            return await session.get(User, user_id)

    async def get_user_by_email(self, email: str) -> User | None:
        async with self._session() as session:
            result = await session.execute(select(User).where(User.email == email.lower()))
            return result.scalar_one_or_none()

    async def get_user_by_verification_token(self, token: str) -> User | None:
        async with self._session() as session:
            result = await session.execute(select(User).where(User.verification_token == token))
            return result.scalar_one_or_none()

    async def get_user_by_reset_token(self, token: str) -> User | None:
        """Get the user holding an unexpired password reset token."""
        async with self._session() as session:
            result = await session.execute(select(User).where(User.reset_token == token))
            user = result.scalar_one_or_none()

        if not user or not user.reset_token_expiry:
            return None
        expiry = user.reset_token_expiry
        if expiry.tzinfo is None:
            # SQLite hands back naive datetimes
            expiry = expiry.replace(tzinfo=UTC)
        if expiry <= datetime.now(UTC):
            return None
        return user

    async def list_users(self) -> list[User]:
        async with self._session() as session:
            result = await session.execute(select(User).order_by(User.created_at))
            return list(result.scalars().all())

    async def create_user(self, email: str, **fields: Any) -> User:
        """Insert a new user; token_quota defaults to the active admin config's default."""
        if "token_quota" not in fields:
            fields["token_quota"] = await self.get_default_token_quota()

        user = User(email=email.lower(), **fields)
        async with self._session() as session:
            session.add(user)
            await session.commit()
            await session.refresh(user)
        logger.info("Created new user: %s", user.id)
        return user

    async def update_user(self, user_id: str, **values: Any) -> User | None:
        """Update user columns and return the refreshed row (None if the user does not exist)."""
        async with self._session() as session:
            await session.execute(update(User).where(User.id == user_id).values(**values))
            await session.commit()
            return await session.get(User, user_id)

    async def increment_token_usage(self, user_id: str, tokens: int) -> bool:
        """
        Atomically add tokens to a user's running usage counter.

        Issued as a single ``token_used = token_used + :tokens`` UPDATE so
        concurrent sends by the same user cannot lose increments.

        Returns:
            True if a user row was updated.
        """
        async with self._session() as session:
            result = await session.execute(
                update(User).where(User.id == user_id).values(token_used=User.token_used + tokens)
            )
            await session.commit()
            return result.rowcount > 0

    async def ensure_admin_user(self, email: str, password_hash: str) -> User:
        """Create or promote the bootstrap administrator account."""
        existing = await self.get_user_by_email(email)
        if existing:
            user = await self.update_user(
                existing.id,
                is_admin=True,
                is_active=True,
                email_verified=True,
                token_quota=100000,
            )
            return user or existing

        return await self.create_user(
            email,
            password_hash=password_hash,
            first_name="Admin",
            last_name="User",
            is_admin=True,
            is_active=True,
            email_verified=True,
            token_quota=100000,
        )

    # =========================================================================
    # Conversations
    # =========================================================================

    async def list_conversations(self, user_id: str) -> list[Conversation]:
        async with self._session() as session:
            result = await session.execute(
                select(Conversation).where(Conversation.user_id == user_id).order_by(Conversation.updated_at)
            )
            return list(result.scalars().all())

    async def get_conversation(self, conversation_id: int, user_id: str) -> Conversation | None:
        """Get a conversation only if it belongs to the given user."""
        async with self._session() as session:
            result = await session.execute(
                select(Conversation).where(
                    Conversation.id == conversation_id,
                    Conversation.user_id == user_id,
                )
            )
            return result.scalar_one_or_none()

    async def create_conversation(self, user_id: str, title: str) -> Conversation:
        conversation = Conversation(user_id=user_id, title=title)
        async with self._session() as session:
            session.add(conversation)
            await session.commit()
            await session.refresh(conversation)
            return conversation

    async def update_conversation_title(self, conversation_id: int, title: str) -> None:
        async with self._session() as session:
            await session.execute(
                update(Conversation)
                .where(Conversation.id == conversation_id)
                .values(title=title, updated_at=datetime.now(UTC))
            )
            await session.commit()

    async def delete_conversation(self, conversation_id: int, user_id: str) -> bool:
        """
        Delete a conversation (and its messages) owned by the given user.

        Returns:
            True if deleted, False if not found.
        """
        async with self._session() as session:
            result = await session.execute(
                select(Conversation).where(
                    Conversation.id == conversation_id,
                    Conversation.user_id == user_id,
                )
            )
            conversation = result.scalar_one_or_none()
            if not conversation:
                return False
            await session.delete(conversation)
            await session.commit()
            return True

    # =========================================================================
    # Messages
    # =========================================================================

    async def list_messages(self, conversation_id: int) -> list[Message]:
        """Conversation history, oldest first."""
        async with self._session() as session:
            result = await session.execute(
                select(Message).where(Message.conversation_id == conversation_id).order_by(Message.id)
            )
            return list(result.scalars().all())

    async def add_message(
        self,
        conversation_id: int,
        role: str,
        content: str,
        attachments: list[dict[str, Any]] | None = None,
        provider: str | None = None,
    ) -> Message:
        """Insert a message and bump the parent conversation's updated_at in the same transaction."""
        message = Message(
            conversation_id=conversation_id,
            role=role,
            content=content,
            attachments=attachments,
            provider=provider,
        )
        async with self._session() as session:
            session.add(message)
            await session.execute(
                update(Conversation)
                .where(Conversation.id == conversation_id)
                .values(updated_at=datetime.now(UTC))
            )
            await session.commit()
            await session.refresh(message)
            return message

    # =========================================================================
    # Admin configuration
    # =========================================================================

    async def get_active_admin_config(self) -> AdminConfig | None:
        async with self._session() as session:
            result = await session.execute(
                select(AdminConfig).where(AdminConfig.is_active.is_(True)).order_by(AdminConfig.id.desc()).limit(1)
            )
            return result.scalar_one_or_none()

    async def save_admin_config(self, **fields: Any) -> AdminConfig:
        """Deactivate every existing configuration and insert the new one as the only active row."""
        config = AdminConfig(**fields, is_active=True)
        async with self._session() as session:
            await session.execute(update(AdminConfig).values(is_active=False))
            session.add(config)
            await session.commit()
            await session.refresh(config)
        logger.info("Saved admin config %s (provider=%s, model=%s)", config.id, config.api_provider, config.model_name)
        return config

    async def get_default_token_quota(self) -> int:
        config = await self.get_active_admin_config()
        if config and config.default_token_quota is not None:
            return config.default_token_quota
        return settings.DEFAULT_TOKEN_QUOTA


# Global instance
database = Database()
