"""SQLAlchemy + SQLite persistence for providers, endpoints and conversations.

`ChatStore` is the single persistence interface handed to the chat core and
the admin routes. Every row gets a fresh uuid4 id, so concurrent inserts
never collide on identity.
"""

import itertools
import os
import uuid
from datetime import datetime, timezone

import structlog
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
    select,
)
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

logger = structlog.get_logger(__name__)

Base = declarative_base()

DEFAULT_PLATFORMS = [
    {"id": "together", "name": "Together AI", "base_url": "https://api.together.xyz/v1", "is_custom": False},
    {"id": "openai", "name": "OpenAI", "base_url": "https://api.openai.com/v1", "is_custom": False},
    {"id": "anthropic", "name": "Anthropic", "base_url": "https://api.anthropic.com/v1", "is_custom": False},
    {"id": "google", "name": "Google AI", "base_url": "https://generativelanguage.googleapis.com/v1beta", "is_custom": False},
    {"id": "custom", "name": "Custom", "base_url": "", "is_custom": True},
]

# Tie-breaker for messages written within the same clock tick.
_insert_counter = itertools.count()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class Platform(Base):
    __tablename__ = "platforms"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False, unique=True)
    base_url = Column(String, nullable=False, default="")
    is_custom = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=_utcnow)


class ApiKey(Base):
    __tablename__ = "api_keys"

    id = Column(String, primary_key=True, default=new_id)
    name = Column(String, nullable=False, unique=True)
    api_key = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False, default=_utcnow)


class Endpoint(Base):
    """A named model configuration bound to a platform and a credential."""
    __tablename__ = "endpoints"

    id = Column(String, primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    platform_id = Column(String, ForeignKey("platforms.id"), nullable=False)
    custom_base_url = Column(String, nullable=False, default="")
    api_key_id = Column(String, ForeignKey("api_keys.id"), nullable=False)
    model = Column(String, nullable=False)
    model_type = Column(String, nullable=False, default="text")  # "text" or "image"
    system_prompt = Column(Text, nullable=False, default="")
    temperature = Column(Float, nullable=False, default=0.7)
    created_at = Column(DateTime, nullable=False, default=_utcnow)


class ChatSession(Base):
    __tablename__ = "chat_sessions"

    id = Column(String, primary_key=True, default=new_id)
    endpoint_id = Column(String, ForeignKey("endpoints.id"), nullable=False)
    name = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False, default=_utcnow)


class ChatMessage(Base):
    """Persistent chat turn. Immutable once written."""
    __tablename__ = "chat_messages"

    id = Column(String, primary_key=True, default=new_id)
    session_id = Column(String, ForeignKey("chat_sessions.id"), index=True, nullable=False)
    role = Column(String, nullable=False)  # "user", "assistant" or "system"
    content = Column(Text, nullable=False)
    image_path = Column(String, nullable=True)
    timestamp = Column(DateTime, nullable=False, default=_utcnow)
    seq = Column(Integer, nullable=False, default=0)


class ChatStore:
    """Wraps an engine + session factory with the queries the service needs."""

    def __init__(self, database_url: str | None = None):
        url = database_url or os.environ.get("DATABASE_URL", "sqlite:///data/modelhub.sqlite")
        if url.startswith("sqlite:///") and ":memory:" not in url:
            directory = os.path.dirname(url[len("sqlite:///"):])
            if directory:
                os.makedirs(directory, exist_ok=True)

        engine_kwargs = {"echo": False}
        if url.startswith("sqlite"):
            # Streaming generators write from threadpool workers.
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in url:
                engine_kwargs["poolclass"] = StaticPool

        self.engine = create_engine(url, **engine_kwargs)
        self._SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)
        Base.metadata.create_all(self.engine)
        logger.info("db.initialized", url=url.split("///")[0] + "///***")

    def session(self) -> Session:
        return self._SessionLocal()

    def reset(self) -> None:
        """Drop and recreate every table."""
        Base.metadata.drop_all(self.engine)
        Base.metadata.create_all(self.engine)

    def seed_platforms(self) -> int:
        """Insert the built-in platforms when the table is empty.

        Returns:
            Number of platforms created.
        """
        with self.session() as session:
            if session.scalar(select(Platform.id).limit(1)) is not None:
                return 0
            for platform in DEFAULT_PLATFORMS:
                session.add(Platform(**platform))
            session.commit()
        logger.info("db.platforms_seeded", count=len(DEFAULT_PLATFORMS))
        return len(DEFAULT_PLATFORMS)

    # Platforms

    def list_platforms(self) -> list[Platform]:
        with self.session() as session:
            return list(session.scalars(select(Platform).order_by(Platform.name)))

    # API keys

    def list_api_keys(self) -> list[ApiKey]:
        with self.session() as session:
            return list(session.scalars(select(ApiKey).order_by(ApiKey.name)))

    def create_api_key(self, name: str, api_key: str) -> ApiKey:
        with self.session() as session:
            row = ApiKey(id=new_id(), name=name, api_key=api_key)
            session.add(row)
            session.commit()
            return row

    def update_api_key(self, key_id: str, name: str, api_key: str) -> ApiKey | None:
        with self.session() as session:
            row = session.get(ApiKey, key_id)
            if row is None:
                return None
            row.name = name
            row.api_key = api_key
            session.commit()
            return row

    def delete_api_key(self, key_id: str) -> bool:
        return self._delete(ApiKey, key_id)

    # Endpoints

    def list_endpoints(self) -> list[tuple[Endpoint, Platform, ApiKey]]:
        with self.session() as session:
            stmt = (
                select(Endpoint, Platform, ApiKey)
                .join(Platform, Endpoint.platform_id == Platform.id)
                .join(ApiKey, Endpoint.api_key_id == ApiKey.id)
                .order_by(Endpoint.name)
            )
            return [tuple(row) for row in session.execute(stmt).all()]

    def get_endpoint_bundle(self, endpoint_id: str) -> tuple[Endpoint, Platform, ApiKey] | None:
        """Fetch an endpoint joined with its platform and credential in one query."""
        with self.session() as session:
            stmt = (
                select(Endpoint, Platform, ApiKey)
                .join(Platform, Endpoint.platform_id == Platform.id)
                .join(ApiKey, Endpoint.api_key_id == ApiKey.id)
                .where(Endpoint.id == endpoint_id)
            )
            row = session.execute(stmt).first()
            return tuple(row) if row else None

    def create_endpoint(self, **fields) -> Endpoint:
        with self.session() as session:
            row = Endpoint(id=new_id(), **fields)
            session.add(row)
            session.commit()
            return row

    def update_endpoint(self, endpoint_id: str, **fields) -> Endpoint | None:
        with self.session() as session:
            row = session.get(Endpoint, endpoint_id)
            if row is None:
                return None
            for key, value in fields.items():
                setattr(row, key, value)
            session.commit()
            return row

    def delete_endpoint(self, endpoint_id: str) -> bool:
        return self._delete(Endpoint, endpoint_id)

    # Sessions

    def list_sessions(self) -> list[ChatSession]:
        with self.session() as session:
            return list(session.scalars(select(ChatSession).order_by(ChatSession.created_at.desc())))

    def create_session(self, endpoint_id: str, name: str) -> ChatSession:
        with self.session() as session:
            row = ChatSession(id=new_id(), endpoint_id=endpoint_id, name=name)
            session.add(row)
            session.commit()
            return row

    def delete_session(self, session_id: str) -> bool:
        """Delete a session and all of its messages."""
        with self.session() as session:
            session.query(ChatMessage).filter(ChatMessage.session_id == session_id).delete()
            deleted = session.query(ChatSession).filter(ChatSession.id == session_id).delete()
            session.commit()
            return bool(deleted)

    # Messages

    def add_message(
        self,
        session_id: str,
        role: str,
        content: str,
        image_path: str | None = None,
        message_id: str | None = None,
    ) -> str:
        """Insert a single chat turn.

        Args:
            session_id: Owning chat session.
            role: "user", "assistant" or "system".
            content: Message text.
            image_path: Optional `/uploads/...` blob reference.
            message_id: Pre-generated id; a new uuid4 is used when omitted.

        Returns:
            The id of the inserted row.
        """
        message_id = message_id or new_id()
        with self.session() as session:
            session.add(ChatMessage(
                id=message_id,
                session_id=session_id,
                role=role,
                content=content,
                image_path=image_path,
                timestamp=_utcnow(),
                seq=next(_insert_counter),
            ))
            session.commit()
        logger.debug("db.message_saved", session_id=session_id, role=role)
        return message_id

    def get_messages(self, session_id: str, exclude_id: str | None = None) -> list[ChatMessage]:
        """Fetch a session's messages in ascending time, ties by insertion order."""
        with self.session() as session:
            stmt = select(ChatMessage).where(ChatMessage.session_id == session_id)
            if exclude_id:
                stmt = stmt.where(ChatMessage.id != exclude_id)
            stmt = stmt.order_by(ChatMessage.timestamp.asc(), ChatMessage.seq.asc())
            return list(session.scalars(stmt))

    def count_messages(self) -> int:
        with self.session() as session:
            return session.query(ChatMessage).count()

    def _delete(self, model, row_id: str) -> bool:
        with self.session() as session:
            deleted = session.query(model).filter(model.id == row_id).delete()
            session.commit()
            return bool(deleted)
