import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    BigInteger,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    event,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func
from sqlalchemy.types import CHAR, TypeDecorator

Base = declarative_base()


class GUID(TypeDecorator):
    impl = CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PGUUID(as_uuid=True))
        return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, uuid.UUID):
            return value if dialect.name == "postgresql" else str(value)
        if isinstance(value, str):
            try:
                parsed = uuid.UUID(value)
            except ValueError:
                return value
            return parsed if dialect.name == "postgresql" else str(parsed)
        return value

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, uuid.UUID):
            return value
        try:
            return uuid.UUID(value)
        except ValueError:
            return value


UUID_TYPE = GUID()
JSON_TYPE = JSON().with_variant(JSONB, "postgresql")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _id_column():
    return Column(
        UUID_TYPE,
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )


def _created_at_column():
    return Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)


def _updated_at_column():
    return Column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        server_default=func.now(),
        nullable=False,
    )


class User(Base):
    __tablename__ = "users"

    id = _id_column()
    name = Column(String(120), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(16), nullable=False, default="user", server_default=text("'user'"))
    created_at = _created_at_column()
    updated_at = _updated_at_column()


class Customer(Base):
    __tablename__ = "customers"

    id = _id_column()
    name = Column(String(200), nullable=False)
    company = Column(String(200), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    phone = Column(String(40))
    created_at = _created_at_column()
    updated_at = _updated_at_column()


class Tag(Base):
    __tablename__ = "tags"

    id = _id_column()
    name = Column(String(100), nullable=False, unique=True)
    color = Column(String(16), nullable=False, default="#3498db", server_default=text("'#3498db'"))
    category = Column(String(32), nullable=False, default="other", server_default=text("'other'"))
    created_at = _created_at_column()
    updated_at = _updated_at_column()

    __table_args__ = (Index("idx_tags_category", "category"),)


class Counter(Base):
    """Named monotonic sequence; bumped with a single UPDATE inside the caller's transaction."""

    __tablename__ = "counters"

    name = Column(String(64), primary_key=True)
    value = Column(BigInteger, nullable=False, default=0, server_default=text("0"))


class CustomerRequest(Base):
    __tablename__ = "requests"

    id = _id_column()
    sequence_number = Column(BigInteger, nullable=False, unique=True)
    request_id = Column(String(32), nullable=False, unique=True)
    title = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    reporter = Column(String(200), nullable=False, default="", server_default=text("''"))
    status = Column(String(32), nullable=False, default="new", server_default=text("'new'"))
    priority = Column(String(16), nullable=False, default="medium", server_default=text("'medium'"))
    # Self references are not enforced; a deleted parent leaves a dangling id.
    parent_request_id = Column(UUID_TYPE)
    custom_fields = Column(JSON_TYPE)
    created_by = Column(UUID_TYPE)
    updated_by = Column(UUID_TYPE)
    created_at = _created_at_column()
    updated_at = _updated_at_column()

    __table_args__ = (
        Index("idx_requests_status", "status"),
        Index("idx_requests_priority", "priority"),
        Index("idx_requests_created_at", "created_at"),
    )

    customer_links = relationship(
        "RequestCustomerLink",
        order_by="RequestCustomerLink.position",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    tag_links = relationship(
        "RequestTagLink",
        order_by="RequestTagLink.position",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    related_links = relationship(
        "RequestRelationLink",
        order_by="RequestRelationLink.position",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    comments = relationship(
        "RequestComment",
        order_by="RequestComment.position",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    history = relationship(
        "RequestHistory",
        order_by="RequestHistory.position",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def customer_ids(self) -> list[uuid.UUID]:
        return [link.customer_id for link in self.customer_links]

    @property
    def tag_ids(self) -> list[uuid.UUID]:
        return [link.tag_id for link in self.tag_links]

    @property
    def related_request_ids(self) -> list[uuid.UUID]:
        return [link.related_request_id for link in self.related_links]


class RequestCustomerLink(Base):
    __tablename__ = "request_customers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    request_id = Column(UUID_TYPE, ForeignKey("requests.id", ondelete="CASCADE"), nullable=False)
    customer_id = Column(UUID_TYPE, nullable=False)
    position = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("idx_request_customers_request", "request_id"),
        Index("idx_request_customers_customer", "customer_id"),
    )


class RequestTagLink(Base):
    __tablename__ = "request_tags"

    id = Column(Integer, primary_key=True, autoincrement=True)
    request_id = Column(UUID_TYPE, ForeignKey("requests.id", ondelete="CASCADE"), nullable=False)
    tag_id = Column(UUID_TYPE, nullable=False)
    position = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("idx_request_tags_request", "request_id"),
        Index("idx_request_tags_tag", "tag_id"),
    )


class RequestRelationLink(Base):
    __tablename__ = "request_relations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    request_id = Column(UUID_TYPE, ForeignKey("requests.id", ondelete="CASCADE"), nullable=False)
    related_request_id = Column(UUID_TYPE, nullable=False)
    position = Column(Integer, nullable=False, default=0)

    __table_args__ = (Index("idx_request_relations_request", "request_id"),)


class RequestComment(Base):
    __tablename__ = "request_comments"

    id = _id_column()
    request_id = Column(UUID_TYPE, ForeignKey("requests.id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer, nullable=False)
    content = Column(Text, nullable=False)
    author_id = Column(UUID_TYPE, nullable=False)
    attachments = Column(JSON_TYPE, nullable=False, default=list)
    created_at = _created_at_column()

    __table_args__ = (Index("idx_request_comments_request", "request_id", "position"),)


class RequestHistory(Base):
    __tablename__ = "request_history"

    id = _id_column()
    request_id = Column(UUID_TYPE, ForeignKey("requests.id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer, nullable=False)
    field = Column(String(32), nullable=False)
    old_value = Column(JSON_TYPE)
    new_value = Column(JSON_TYPE)
    changed_by = Column(UUID_TYPE, nullable=False)
    changed_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (Index("idx_request_history_request", "request_id", "position"),)


@event.listens_for(RequestHistory, "before_update")
def _history_is_append_only(_mapper, _connection, target: RequestHistory) -> None:
    raise ValueError(f"history entry {target.id} is immutable")
