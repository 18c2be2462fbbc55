from __future__ import annotations

from enum import IntEnum

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    SmallInteger,
    String,
    func,
    text,
)
from sqlalchemy.orm import relationship

from .db import Base

# BIGSERIAL on PostgreSQL; SQLite only autoincrements INTEGER PRIMARY KEY
BigIntPK = BigInteger().with_variant(Integer(), "sqlite")


class ApplicationType(IntEnum):
    """Client application a token or watch belongs to."""

    UNKNOWN = -1
    KUROBA_EX_LITE_DEBUG = 0
    KUROBA_EX_LITE_PRODUCTION = 1


class TokenType(IntEnum):
    """Kind of delivery credential stored in account_tokens."""

    UNKNOWN = -1
    FIREBASE = 0


# ============================================================================
# OPERATIONAL TABLES
# ============================================================================


class Migration(Base):
    """Applied schema version with the checksum of its revision script."""

    __tablename__ = "migrations"

    version = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(256), nullable=True)
    applied_on = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    checksum = Column(String(512), nullable=True)


class LogEntry(Base):
    """Append-only log record."""

    __tablename__ = "logs"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    log_time = Column(DateTime(timezone=True), nullable=False)
    log_level = Column(String(8), nullable=True)
    target = Column(String, nullable=True)
    message = Column(String, nullable=False)

    __table_args__ = (
        Index("logs_log_time_idx", "log_time"),
        Index("logs_log_level_idx", "log_level"),
    )


# ============================================================================
# IDENTITY
# ============================================================================


class Invite(Base):
    """Single-use invite that creates a trial account when accepted."""

    __tablename__ = "invites"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    invite_id = Column(String(256), nullable=False)
    expires_on = Column(DateTime(timezone=True), nullable=False)
    accepted_on = Column(DateTime(timezone=True), nullable=True)
    created_on = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        Index("invites_invite_id_idx", "invite_id", unique=True),
        Index("invites_expires_on_idx", "expires_on"),
    )


class Account(Base):
    """Registered device/user, keyed externally by the hashed account_id."""

    __tablename__ = "accounts"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    account_id = Column(String(128), nullable=False)
    valid_until = Column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_on = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    deleted_on = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    tokens = relationship(
        "AccountToken", back_populates="account", cascade="all, delete-orphan", passive_deletes=True
    )
    replies = relationship(
        "PostReply", back_populates="account", cascade="all, delete-orphan", passive_deletes=True
    )
    watches = relationship(
        "PostWatch", back_populates="account", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        Index("accounts_account_id_idx", "account_id", unique=True),
        Index("accounts_created_on_idx", "created_on"),
        Index("accounts_deleted_on_idx", "deleted_on"),
    )


class AccountToken(Base):
    """Push-notification token owned by an account."""

    __tablename__ = "account_tokens"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    owner_account_id = Column(
        BigInteger,
        ForeignKey("accounts.id", name="fk_owner_account_id", onupdate="CASCADE", ondelete="CASCADE"),
        nullable=False,
    )
    token = Column(String(1024), nullable=True)
    application_type = Column(BigInteger, nullable=False)
    token_type = Column(BigInteger, nullable=False)

    account = relationship("Account", back_populates="tokens")

    __table_args__ = (
        Index("owner_account_id_idx", "owner_account_id"),
        Index("token_idx", "token"),
        Index("unique_token_idx", "token", "application_type", "token_type", unique=True),
        # One token per (application, token kind) slot of an account
        Index(
            "account_tokens_owner_type_idx",
            "owner_account_id",
            "application_type",
            "token_type",
            unique=True,
        ),
    )


# ============================================================================
# CONTENT ADDRESSING
# ============================================================================


class Thread(Base):
    """Remote imageboard thread plus the ingestion watermark."""

    __tablename__ = "threads"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    site_name = Column(String(128), nullable=False)
    board_code = Column(String(64), nullable=False)
    thread_no = Column(BigInteger, nullable=False)
    is_dead = Column(Boolean, nullable=True, default=False, server_default=text("false"))

    # Ingestion high-water mark
    last_processed_post_no = Column(BigInteger, nullable=True, default=0, server_default=text("0"))
    last_processed_post_sub_no = Column(BigInteger, nullable=True, default=0, server_default=text("0"))

    # Timestamps
    created_on = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    deleted_on = Column(DateTime(timezone=True), nullable=True)
    last_modified = Column(DateTime(timezone=True), nullable=True)

    post_descriptors = relationship(
        "PostDescriptor", back_populates="thread", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        Index("threads_unique_id_idx", "site_name", "board_code", "thread_no", unique=True),
    )

    def __repr__(self) -> str:
        return f"Thread({self.site_name}/{self.board_code}/{self.thread_no})"


class PostDescriptor(Base):
    """Identity of a post inside a thread, independent of its content lifecycle."""

    __tablename__ = "post_descriptors"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    owner_thread_id = Column(
        BigInteger,
        ForeignKey("threads.id", name="fk_owner_thread_id", onupdate="CASCADE", ondelete="CASCADE"),
        nullable=False,
    )
    post_no = Column(BigInteger, nullable=False)
    post_sub_no = Column(BigInteger, nullable=False, default=0, server_default=text("0"))

    thread = relationship("Thread", back_populates="post_descriptors")
    post = relationship(
        "Post", back_populates="descriptor", uselist=False, cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        Index(
            "post_descriptors_unique_id_idx",
            "owner_thread_id",
            "post_no",
            "post_sub_no",
            unique=True,
        ),
    )


class Post(Base):
    """Content lifecycle of a post descriptor."""

    __tablename__ = "posts"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    owner_post_descriptor_id = Column(
        BigInteger,
        ForeignKey(
            "post_descriptors.id",
            name="fk_posts_owner_post_descriptor_id",
            onupdate="CASCADE",
            ondelete="CASCADE",
        ),
        nullable=False,
    )
    is_dead = Column(Boolean, nullable=False, default=False, server_default=text("false"))
    created_on = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    deleted_on = Column(DateTime(timezone=True), nullable=True)

    descriptor = relationship("PostDescriptor", back_populates="post")

    __table_args__ = (
        Index("posts_owner_post_descriptor_id_idx", "owner_post_descriptor_id", unique=True),
    )


# ============================================================================
# RELATIONSHIPS
# ============================================================================


class PostReply(Base):
    """Reply edge: owner_post_descriptor quoted reply_to_post_descriptor, which the account watches."""

    __tablename__ = "post_replies"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    owner_account_id = Column(
        BigInteger,
        ForeignKey("accounts.id", name="fk_owner_account_id", onupdate="CASCADE", ondelete="CASCADE"),
        nullable=False,
    )
    owner_post_descriptor_id = Column(
        BigInteger,
        ForeignKey(
            "post_descriptors.id",
            name="fk_owner_post_descriptor_id",
            onupdate="CASCADE",
            ondelete="CASCADE",
        ),
        nullable=False,
    )
    reply_to_post_descriptor_id = Column(
        BigInteger,
        ForeignKey(
            "post_descriptors.id",
            name="fk_reply_to_post_descriptor_id",
            onupdate="CASCADE",
            ondelete="CASCADE",
        ),
        nullable=False,
    )

    # Notification delivery state
    notification_delivery_attempt = Column(
        SmallInteger, nullable=True, default=0, server_default=text("0")
    )
    notification_delivered_on = Column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_on = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    deleted_on = Column(DateTime(timezone=True), nullable=True)

    account = relationship("Account", back_populates="replies")
    owner_post_descriptor = relationship("PostDescriptor", foreign_keys=[owner_post_descriptor_id])
    reply_to_post_descriptor = relationship("PostDescriptor", foreign_keys=[reply_to_post_descriptor_id])

    __table_args__ = (
        Index(
            "post_replies_unique_id_idx",
            "owner_account_id",
            "owner_post_descriptor_id",
            "reply_to_post_descriptor_id",
            unique=True,
        ),
        Index("post_replies_undelivered_idx", "notification_delivered_on", "created_on"),
    )


class PostWatch(Base):
    """Subscription of an account to a post descriptor for one client application."""

    __tablename__ = "post_watches"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    owner_account_id = Column(
        BigInteger,
        ForeignKey("accounts.id", name="fk_account_id", onupdate="CASCADE", ondelete="CASCADE"),
        nullable=False,
    )
    owner_post_descriptor_id = Column(
        BigInteger,
        ForeignKey(
            "post_descriptors.id",
            name="fk_owner_post_descriptor_id",
            onupdate="CASCADE",
            ondelete="CASCADE",
        ),
        nullable=False,
    )
    application_type = Column(
        BigInteger, nullable=False, default=ApplicationType.UNKNOWN, server_default=text("-1")
    )

    account = relationship("Account", back_populates="watches")
    descriptor = relationship("PostDescriptor")

    __table_args__ = (
        Index("post_watches_owner_account_id_idx", "owner_account_id"),
        Index("post_watches_owner_post_descriptor_id_idx", "owner_post_descriptor_id"),
        Index(
            "post_watches_unique_idx",
            "owner_account_id",
            "owner_post_descriptor_id",
            "application_type",
            unique=True,
        ),
    )
