"""
SQLAlchemy ORM Models for the Check-in Database

Tables:
- users: accounts and token revocation counter
- user_face_embeddings: enrolled face vectors, one active row per user
- user_blink_profiles: registered double-blink video and its profile
- checkin_sessions: two-step check-in attempts (face, then blink)
- attendance: accepted check-ins
"""
import uuid
from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Text, Float, JSON, Uuid, ForeignKey
)

from checkin.config import DB_SCHEMA
from checkin.database import Base, table_ref

SCHEMA_ARGS = {"schema": DB_SCHEMA}


class UserDB(Base):
    """Registered account."""
    __tablename__ = "users"
    __table_args__ = SCHEMA_ARGS

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(320), nullable=False, unique=True, index=True)
    full_name = Column(Text, nullable=False)
    password_hash = Column(Text, nullable=False)
    # Bumped on logout, invalidates every token issued before
    token_version = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<UserDB(id={self.id}, email='{self.email}')>"


class FaceEmbeddingDB(Base):
    """
    Enrolled face embedding.

    The vector is kept here for 1:1 verification and mirrored into FAISS
    under `embedding_index` for duplicate-enrolment search.
    """
    __tablename__ = "user_face_embeddings"
    __table_args__ = SCHEMA_ARGS

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey(table_ref("users") + ".id"), nullable=False, index=True)
    embedding = Column(JSON, nullable=False)
    model_version = Column(String(64), nullable=False)
    embedding_index = Column(Integer, nullable=False, unique=True, index=True)
    image_name = Column(Text, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<FaceEmbeddingDB(id={self.id}, user_id={self.user_id}, version='{self.model_version}')>"


class BlinkProfileDB(Base):
    """Registered double-blink video and the profile extracted from it."""
    __tablename__ = "user_blink_profiles"
    __table_args__ = SCHEMA_ARGS

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey(table_ref("users") + ".id"), nullable=False, unique=True)
    video_path = Column(Text, nullable=False)
    video_url = Column(Text, nullable=False)
    video_sha256 = Column(String(64), nullable=False)
    blink_count = Column(Integer, nullable=False)
    interval_ms = Column(Float, nullable=True)
    mean_duration_ms = Column(Float, nullable=True)
    frames_analyzed = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)


STATUS_REJECTED = "rejected"
STATUS_BLINK_PENDING = "blink_pending"
STATUS_COMPLETE = "complete"
STATUS_FAILED = "failed"


class CheckInSessionDB(Base):
    """
    One check-in attempt.

    status: rejected (face failed) | blink_pending | complete | failed
    """
    __tablename__ = "checkin_sessions"
    __table_args__ = SCHEMA_ARGS

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey(table_ref("users") + ".id"), nullable=False, index=True)
    status = Column(String(32), nullable=False)
    face_distance = Column(Float, nullable=False)
    blink_attempts = Column(Integer, default=0, nullable=False)
    last_blink_reason = Column(String(32), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime, nullable=True)


class AttendanceDB(Base):
    """Accepted check-in."""
    __tablename__ = "attendance"
    __table_args__ = SCHEMA_ARGS

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey(table_ref("users") + ".id"), nullable=False, index=True)
    session_id = Column(Uuid, ForeignKey(table_ref("checkin_sessions") + ".id"), nullable=False, unique=True)
    checked_in_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    face_distance = Column(Float, nullable=False)
    blink_interval_ms = Column(Float, nullable=True)
