"""
Repositories

Database operations for users, enrolments, check-in sessions and
attendance using SQLAlchemy async. All methods take an AsyncSession.
"""
import uuid
from datetime import datetime, timedelta
from typing import Optional, List, Union
from sqlalchemy import select, update, func, case
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from checkin.models import (
    UserDB,
    FaceEmbeddingDB,
    BlinkProfileDB,
    CheckInSessionDB,
    AttendanceDB,
    STATUS_BLINK_PENDING,
    STATUS_COMPLETE,
    STATUS_FAILED,
)
from checkin.schemas import User, CheckInSession, Attendance

logger = logging.getLogger(__name__)

IdLike = Union[str, uuid.UUID]


def _as_uuid(value: IdLike) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


class UserRepository:
    """Repository class for users."""

    @staticmethod
    async def create(
        session: AsyncSession,
        email: str,
        full_name: str,
        password_hash: str
    ) -> UserDB:
        db_user = UserDB(
            id=uuid.uuid4(),
            email=email.strip().lower(),
            full_name=full_name.strip(),
            password_hash=password_hash,
            token_version=0,
            is_active=True,
            created_at=datetime.utcnow()
        )
        session.add(db_user)
        await session.commit()
        await session.refresh(db_user)

        logger.info(f"Created user {db_user.id}")
        return db_user

    @staticmethod
    async def get_by_id(session: AsyncSession, user_id: IdLike) -> Optional[UserDB]:
        user_uuid = _as_uuid(user_id)
        if user_uuid is None:
            return None
        result = await session.execute(select(UserDB).where(UserDB.id == user_uuid))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_email(session: AsyncSession, email: str) -> Optional[UserDB]:
        result = await session.execute(
            select(UserDB).where(UserDB.email == email.strip().lower())
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def count(session: AsyncSession) -> int:
        result = await session.execute(
            select(func.count(UserDB.id)).where(UserDB.is_active == True)  # noqa: E712
        )
        return result.scalar() or 0

    @staticmethod
    async def revoke_tokens(session: AsyncSession, user: UserDB) -> None:
        """Invalidate every token issued so far."""
        await session.execute(
            update(UserDB)
            .where(UserDB.id == user.id)
            .values(token_version=UserDB.token_version + 1)
        )
        await session.commit()

    @staticmethod
    def db_to_schema(
        db_user: UserDB,
        face: Optional[FaceEmbeddingDB] = None,
        blink: Optional[BlinkProfileDB] = None
    ) -> User:
        return User(
            id=str(db_user.id),
            email=db_user.email,
            full_name=db_user.full_name,
            created_at=db_user.created_at,
            face_registered=face is not None,
            blink_video_url=blink.video_url if blink else None
        )


class FaceEmbeddingRepository:
    """Repository class for user_face_embeddings."""

    @staticmethod
    async def create(
        session: AsyncSession,
        user_id: uuid.UUID,
        embedding: List[float],
        model_version: str,
        embedding_index: int,
        image_name: str
    ) -> FaceEmbeddingDB:
        """
        Store a new enrolment and deactivate any earlier one in the same
        transaction, so a user never has two active embeddings.
        """
        await session.execute(
            update(FaceEmbeddingDB)
            .where(FaceEmbeddingDB.user_id == user_id)
            .where(FaceEmbeddingDB.is_active == True)  # noqa: E712
            .values(is_active=False)
        )

        db_record = FaceEmbeddingDB(
            id=uuid.uuid4(),
            user_id=user_id,
            embedding=[float(x) for x in embedding],
            model_version=model_version,
            embedding_index=embedding_index,
            image_name=image_name,
            is_active=True,
            created_at=datetime.utcnow()
        )
        session.add(db_record)
        await session.commit()
        await session.refresh(db_record)

        logger.info(f"Stored face embedding {db_record.id} for user {user_id}")
        return db_record

    @staticmethod
    async def get_active(session: AsyncSession, user_id: uuid.UUID) -> Optional[FaceEmbeddingDB]:
        result = await session.execute(
            select(FaceEmbeddingDB)
            .where(FaceEmbeddingDB.user_id == user_id)
            .where(FaceEmbeddingDB.is_active == True)  # noqa: E712
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def get_multiple_by_embedding_indices(
        session: AsyncSession,
        indices: List[int]
    ) -> dict:
        """
        Active enrolments for FAISS search hits.

        Returns:
            Dictionary mapping embedding_index to FaceEmbeddingDB
        """
        if not indices:
            return {}

        result = await session.execute(
            select(FaceEmbeddingDB)
            .where(FaceEmbeddingDB.embedding_index.in_(indices))
            .where(FaceEmbeddingDB.is_active == True)  # noqa: E712
        )
        return {record.embedding_index: record for record in result.scalars().all()}


class BlinkProfileRepository:
    """Repository class for user_blink_profiles."""

    @staticmethod
    async def upsert(
        session: AsyncSession,
        user_id: uuid.UUID,
        video_path: str,
        video_url: str,
        video_sha256: str,
        blink_count: int,
        interval_ms: Optional[float],
        mean_duration_ms: Optional[float],
        frames_analyzed: int
    ) -> BlinkProfileDB:
        now = datetime.utcnow()
        db_profile = await BlinkProfileRepository.get(session, user_id)
        if db_profile is None:
            db_profile = BlinkProfileDB(id=uuid.uuid4(), user_id=user_id, created_at=now)
            session.add(db_profile)

        db_profile.video_path = video_path
        db_profile.video_url = video_url
        db_profile.video_sha256 = video_sha256
        db_profile.blink_count = blink_count
        db_profile.interval_ms = interval_ms
        db_profile.mean_duration_ms = mean_duration_ms
        db_profile.frames_analyzed = frames_analyzed
        db_profile.updated_at = now

        await session.commit()
        await session.refresh(db_profile)

        logger.info(f"Stored blink profile for user {user_id} (interval={interval_ms})")
        return db_profile

    @staticmethod
    async def get(session: AsyncSession, user_id: uuid.UUID) -> Optional[BlinkProfileDB]:
        result = await session.execute(
            select(BlinkProfileDB).where(BlinkProfileDB.user_id == user_id)
        )
        return result.scalar_one_or_none()


class CheckInRepository:
    """Repository class for checkin_sessions."""

    @staticmethod
    async def create_session(
        session: AsyncSession,
        user_id: uuid.UUID,
        status: str,
        face_distance: float,
        ttl_seconds: int
    ) -> CheckInSessionDB:
        now = datetime.utcnow()
        db_session = CheckInSessionDB(
            id=uuid.uuid4(),
            user_id=user_id,
            status=status,
            face_distance=face_distance,
            blink_attempts=0,
            created_at=now,
            expires_at=now + timedelta(seconds=ttl_seconds)
        )
        session.add(db_session)
        await session.commit()
        await session.refresh(db_session)
        return db_session

    @staticmethod
    async def get_for_user(
        session: AsyncSession,
        session_id: IdLike,
        user_id: uuid.UUID
    ) -> Optional[CheckInSessionDB]:
        """A user's own session; other users' sessions are not found."""
        session_uuid = _as_uuid(session_id)
        if session_uuid is None:
            return None
        result = await session.execute(
            select(CheckInSessionDB)
            .where(CheckInSessionDB.id == session_uuid)
            .where(CheckInSessionDB.user_id == user_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def expire(session: AsyncSession, db_session: CheckInSessionDB) -> CheckInSessionDB:
        """Fail a pending session whose TTL has passed."""
        await session.execute(
            update(CheckInSessionDB)
            .where(CheckInSessionDB.id == db_session.id)
            .where(CheckInSessionDB.status == STATUS_BLINK_PENDING)
            .values(status=STATUS_FAILED, last_blink_reason="expired")
            .execution_options(synchronize_session=False)
        )
        await session.commit()
        await session.refresh(db_session)
        return db_session

    @staticmethod
    async def claim_blink_attempt(
        session: AsyncSession,
        db_session: CheckInSessionDB,
        max_attempts: int
    ) -> bool:
        """
        Atomically use one blink attempt of a pending, unexpired session.

        Concurrent uploads race on a single conditional UPDATE, so at most
        `max_attempts` of them are ever claimed.

        Returns:
            True if an attempt was claimed; db_session is refreshed either way
        """
        result = await session.execute(
            update(CheckInSessionDB)
            .where(CheckInSessionDB.id == db_session.id)
            .where(CheckInSessionDB.status == STATUS_BLINK_PENDING)
            .where(CheckInSessionDB.blink_attempts < max_attempts)
            .where(CheckInSessionDB.expires_at > datetime.utcnow())
            .values(blink_attempts=CheckInSessionDB.blink_attempts + 1)
            .execution_options(synchronize_session=False)
        )
        await session.commit()
        await session.refresh(db_session)
        return result.rowcount == 1

    @staticmethod
    async def record_blink_failure(
        session: AsyncSession,
        db_session: CheckInSessionDB,
        reason: str,
        max_attempts: int
    ) -> CheckInSessionDB:
        """Store a rejected blink; the session fails once no attempts are left."""
        await session.execute(
            update(CheckInSessionDB)
            .where(CheckInSessionDB.id == db_session.id)
            .where(CheckInSessionDB.status == STATUS_BLINK_PENDING)
            .values(
                last_blink_reason=reason,
                status=case(
                    (CheckInSessionDB.blink_attempts >= max_attempts, STATUS_FAILED),
                    else_=CheckInSessionDB.status
                )
            )
            .execution_options(synchronize_session=False)
        )
        await session.commit()
        await session.refresh(db_session)
        return db_session

    @staticmethod
    def db_to_schema(db_session: CheckInSessionDB) -> CheckInSession:
        return CheckInSession(
            id=str(db_session.id),
            status=db_session.status,
            face_distance=db_session.face_distance,
            blink_attempts=db_session.blink_attempts,
            last_blink_reason=db_session.last_blink_reason,
            created_at=db_session.created_at,
            expires_at=db_session.expires_at,
            completed_at=db_session.completed_at
        )


class AttendanceRepository:
    """Repository class for attendance."""

    @staticmethod
    async def complete_checkin(
        session: AsyncSession,
        db_session: CheckInSessionDB,
        blink_interval_ms: Optional[float],
        reason: str
    ) -> Optional[AttendanceDB]:
        """
        Mark the session complete and record attendance in one commit.

        Returns:
            The attendance record, or None if the session was no longer
            pending (another upload completed or failed it first)
        """
        now = datetime.utcnow()
        result = await session.execute(
            update(CheckInSessionDB)
            .where(CheckInSessionDB.id == db_session.id)
            .where(CheckInSessionDB.status == STATUS_BLINK_PENDING)
            .values(status=STATUS_COMPLETE, completed_at=now, last_blink_reason=reason)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await session.rollback()
            await session.refresh(db_session)
            return None

        record = AttendanceDB(
            id=uuid.uuid4(),
            user_id=db_session.user_id,
            session_id=db_session.id,
            checked_in_at=now,
            face_distance=db_session.face_distance,
            blink_interval_ms=blink_interval_ms
        )
        session.add(record)
        await session.commit()
        await session.refresh(record)
        await session.refresh(db_session)

        logger.info(f"Recorded attendance {record.id} for user {record.user_id}")
        return record

    @staticmethod
    async def list_for_user(
        session: AsyncSession,
        user_id: uuid.UUID,
        skip: int = 0,
        limit: int = 100
    ) -> List[AttendanceDB]:
        result = await session.execute(
            select(AttendanceDB)
            .where(AttendanceDB.user_id == user_id)
            .order_by(AttendanceDB.checked_in_at.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all())

    @staticmethod
    async def count_for_user(session: AsyncSession, user_id: uuid.UUID) -> int:
        result = await session.execute(
            select(func.count(AttendanceDB.id)).where(AttendanceDB.user_id == user_id)
        )
        return result.scalar() or 0

    @staticmethod
    async def count(session: AsyncSession) -> int:
        result = await session.execute(select(func.count(AttendanceDB.id)))
        return result.scalar() or 0

    @staticmethod
    def db_to_schema(record: AttendanceDB) -> Attendance:
        return Attendance(
            id=str(record.id),
            session_id=str(record.session_id),
            checked_in_at=record.checked_in_at,
            face_distance=record.face_distance,
            blink_interval_ms=record.blink_interval_ms
        )
