"""
Blink Check-in API

Attendance check-in with face matching and double-blink liveness, with
SQL storage for accounts, enrolments and attendance.

Endpoints:
- POST /auth/signup, /auth/login, /auth/logout; GET /auth/me
- POST /register/face - Enrol the face embedding baseline
- POST /register/blink - Enrol the double-blink baseline
- POST /checkin/face - Step 1 of a check-in
- POST /checkin/blink - Step 2 of a check-in, records attendance
- GET /checkin/sessions/{session_id}
- GET /attendance
"""
import os
import time
import logging
from datetime import datetime
from contextlib import asynccontextmanager

import numpy as np
from fastapi import FastAPI, File, UploadFile, Form, HTTPException, Query, Depends
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import OAuth2PasswordRequestForm
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from checkin.config import (
    API_TITLE,
    API_DESCRIPTION,
    API_VERSION,
    LOG_LEVEL,
    STORAGE_DIR,
    SUPPORTED_IMAGE_FORMATS,
    SUPPORTED_VIDEO_FORMATS,
    MAX_VIDEO_BYTES,
    UPLOAD_CHUNK_BYTES,
    FACE_MATCH_THRESHOLD,
    DUPLICATE_FACE_THRESHOLD,
    BLINK_BUCKET,
    BLINK_OBJECT_STEM,
    CHECKIN_SESSION_TTL_SECONDS,
    MAX_BLINK_ATTEMPTS,
)
from checkin.schemas import (
    SignupRequest,
    AuthResponse,
    MeResponse,
    FaceRegistrationResponse,
    BlinkProfileOut,
    BlinkRegistrationResponse,
    CheckInSession,
    FaceCheckResponse,
    BlinkCheckResponse,
    AttendanceList,
    ErrorResponse,
)
from checkin.auth import (
    STEP_COMPLETE,
    get_db,
    get_current_user,
    hash_password,
    verify_password,
    create_access_token,
    registration_step,
)
from checkin.blink_service import blink_service, sha256_hex
from checkin.database import init_db, close_db
from checkin.face_service import face_service
from checkin.models import UserDB, STATUS_REJECTED, STATUS_BLINK_PENDING
from checkin.repository import (
    UserRepository,
    FaceEmbeddingRepository,
    BlinkProfileRepository,
    CheckInRepository,
    AttendanceRepository,
)
from checkin.storage import media_storage, StorageError
from checkin.vector_store import vector_store
from checkin.verification import (
    BlinkVerification,
    REASON_REPLAY,
    REASON_UNAVAILABLE,
    REASON_UNREADABLE,
    same_media,
    verify_blink,
    verify_face,
)

# Configure logging
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting Blink Check-in API...")
    logger.info(f"Embedding model: {face_service.model_version} ({face_service.backend})")

    await init_db()

    logger.info(f"FAISS index has {vector_store.count} vectors")
    yield

    await close_db()
    logger.info("Shutting down Blink Check-in API...")


app = FastAPI(
    title=API_TITLE,
    description=API_DESCRIPTION,
    version=API_VERSION,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.mount("/media", StaticFiles(directory=str(STORAGE_DIR)), name="media")


def _extension(filename: str) -> str:
    return "." + filename.lower().split(".")[-1] if "." in filename else ""


def validate_image_file(file: UploadFile) -> None:
    """Validate uploaded image file."""
    if not file.filename:
        raise HTTPException(status_code=400, detail="No filename provided")

    if _extension(file.filename) not in SUPPORTED_IMAGE_FORMATS:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported image format. Supported: {', '.join(sorted(SUPPORTED_IMAGE_FORMATS))}"
        )

    if file.content_type and not file.content_type.startswith("image/"):
        raise HTTPException(status_code=400, detail="File must be an image")


def validate_video_file(file: UploadFile) -> None:
    """Validate uploaded blink clip."""
    if not file.filename:
        raise HTTPException(status_code=400, detail="No filename provided")

    if _extension(file.filename) not in SUPPORTED_VIDEO_FORMATS:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported video format. Supported: {', '.join(sorted(SUPPORTED_VIDEO_FORMATS))}"
        )

    if file.content_type and not file.content_type.startswith("video/"):
        raise HTTPException(status_code=400, detail="File must be a video")


async def read_upload(file: UploadFile, max_bytes: int = None) -> bytes:
    """Read an upload in chunks, stopping as soon as it exceeds `max_bytes`."""
    if max_bytes is not None and file.size is not None and file.size > max_bytes:
        raise HTTPException(status_code=413, detail=f"File exceeds {max_bytes} bytes")

    chunks = []
    total = 0
    while True:
        try:
            chunk = await file.read(UPLOAD_CHUNK_BYTES)
        except Exception as e:
            raise HTTPException(status_code=400, detail=f"Failed to read upload: {str(e)}")
        if not chunk:
            break
        total += len(chunk)
        if max_bytes is not None and total > max_bytes:
            raise HTTPException(status_code=413, detail=f"File exceeds {max_bytes} bytes")
        chunks.append(chunk)

    if total == 0:
        raise HTTPException(status_code=400, detail="Empty file")
    return b"".join(chunks)


def embed_face(image_bytes: bytes) -> np.ndarray:
    """Embedding of the face in an uploaded photo, as an HTTP-level call."""
    try:
        success, embedding = face_service.generate_embedding_from_bytes(image_bytes)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RuntimeError as e:
        logger.error(f"Face model unavailable: {e}")
        raise HTTPException(status_code=503, detail="Face model unavailable")

    if not success or embedding is None:
        raise HTTPException(
            status_code=422,
            detail="No face detected in the provided image. Please ensure the image contains a clear, frontal face."
        )
    return embedding


def analyze_blink_clip(video_bytes: bytes, filename: str):
    try:
        return blink_service.analyze_video_bytes(video_bytes, suffix=_extension(filename))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Could not read video: {e}")
    except RuntimeError as e:
        logger.error(f"Blink analysis unavailable: {e}")
        raise HTTPException(status_code=503, detail="Blink analysis unavailable")


async def load_user_view(db: AsyncSession, user: UserDB):
    """User schema plus the user's current registration step."""
    face = await FaceEmbeddingRepository.get_active(db, user.id)
    blink = await BlinkProfileRepository.get(db, user.id)
    step = registration_step(face is not None, blink is not None)
    return UserRepository.db_to_schema(user, face, blink), step


@app.get("/", include_in_schema=False)
async def root(db: AsyncSession = Depends(get_db)):
    """Root endpoint with API info."""
    return {
        "name": API_TITLE,
        "version": API_VERSION,
        "embedding_model": face_service.model_version,
        "total_users": await UserRepository.count(db),
        "total_checkins": await AttendanceRepository.count(db),
        "faiss_vectors": vector_store.count,
        "endpoints": {
            "signup": "POST /auth/signup",
            "login": "POST /auth/login",
            "register_face": "POST /register/face",
            "register_blink": "POST /register/blink",
            "checkin_face": "POST /checkin/face",
            "checkin_blink": "POST /checkin/blink",
            "attendance": "GET /attendance"
        }
    }


@app.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)):
    """Health check endpoint."""
    try:
        await UserRepository.count(db)
        db_status = "healthy"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        db_status = "unhealthy"

    return {
        "status": "healthy" if db_status == "healthy" else "degraded",
        "model_loaded": face_service.model_loaded,
        "database_status": db_status,
        "faiss_vectors": vector_store.count
    }


# ============================================================================
# AUTH
# ============================================================================
@app.post(
    "/auth/signup",
    response_model=AuthResponse,
    status_code=201,
    responses={409: {"model": ErrorResponse, "description": "Email already registered"}},
    summary="Create an account"
)
async def signup(payload: SignupRequest, db: AsyncSession = Depends(get_db)):
    """Create an account; the next step is face registration."""
    if "@" not in payload.email:
        raise HTTPException(status_code=400, detail="Invalid email address")

    if await UserRepository.get_by_email(db, payload.email):
        raise HTTPException(status_code=409, detail="Email already registered")

    try:
        user = await UserRepository.create(
            db,
            email=payload.email,
            full_name=payload.full_name,
            password_hash=hash_password(payload.password)
        )
    except IntegrityError:
        # Lost a race with a concurrent signup for the same email
        await db.rollback()
        raise HTTPException(status_code=409, detail="Email already registered")
    user_view, step = await load_user_view(db, user)

    return AuthResponse(
        access_token=create_access_token(user),
        user=user_view,
        registration_step=step
    )


@app.post(
    "/auth/login",
    response_model=AuthResponse,
    responses={401: {"model": ErrorResponse, "description": "Invalid credentials"}},
    summary="Log in with email and password"
)
async def login(form_data: OAuth2PasswordRequestForm = Depends(), db: AsyncSession = Depends(get_db)):
    """OAuth2 password login; `username` is the email."""
    user = await UserRepository.get_by_email(db, form_data.username)
    if user is None or not user.is_active or not verify_password(form_data.password, user.password_hash):
        raise HTTPException(
            status_code=401,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"}
        )

    user_view, step = await load_user_view(db, user)
    logger.info(f"User {user.id} logged in (step: {step})")

    return AuthResponse(
        access_token=create_access_token(user),
        user=user_view,
        registration_step=step
    )


@app.post("/auth/logout", summary="Revoke all tokens of the current user")
async def logout(user: UserDB = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    await UserRepository.revoke_tokens(db, user)
    logger.info(f"User {user.id} logged out")
    return {"success": True, "registration_step": "auth"}


@app.get("/auth/me", response_model=MeResponse, summary="Current user and registration step")
async def me(user: UserDB = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    user_view, step = await load_user_view(db, user)
    return MeResponse(user=user_view, registration_step=step)


# ============================================================================
# REGISTRATION
# ============================================================================
@app.post(
    "/register/face",
    response_model=FaceRegistrationResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid input"},
        409: {"model": ErrorResponse, "description": "Face already enrolled by another user"},
        422: {"model": ErrorResponse, "description": "No face detected"}
    },
    summary="Enrol the face baseline",
    description="""
    Compute the face embedding of a captured photo and store it as the
    user's baseline. A new enrolment replaces the previous one.

    **Pipeline:**
    1. Image preprocessing (resize, convert to RGB)
    2. Face detection and embedding
    3. Duplicate search against other users' faces (FAISS)
    4. Store the embedding
    """
)
async def register_face(
    image: UploadFile = File(..., description="Face image file"),
    user: UserDB = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    start_time = time.time()

    validate_image_file(image)
    image_bytes = await read_upload(image)
    embedding = embed_face(image_bytes)

    # Refuse a face that already belongs to someone else
    hits = vector_store.search(embedding, top_k=5)
    if hits:
        owners = await FaceEmbeddingRepository.get_multiple_by_embedding_indices(
            db, [h[0] for h in hits]
        )
        for embedding_index, _, distance in hits:
            owner = owners.get(embedding_index)
            if owner and owner.user_id != user.id and distance < DUPLICATE_FACE_THRESHOLD:
                logger.warning(
                    f"User {user.id} tried to enrol a face matching user {owner.user_id} "
                    f"(distance: {distance:.4f})"
                )
                raise HTTPException(status_code=409, detail="This face is already registered to another account")

    previous = await FaceEmbeddingRepository.get_active(db, user.id)

    try:
        embedding_index = vector_store.add(embedding=embedding)
    except Exception as e:
        logger.error(f"Failed to add embedding to FAISS: {e}")
        raise HTTPException(status_code=500, detail="Failed to store face embedding")

    try:
        await FaceEmbeddingRepository.create(
            db,
            user_id=user.id,
            embedding=embedding.tolist(),
            model_version=face_service.model_version,
            embedding_index=embedding_index,
            image_name=image.filename or "unknown"
        )
    except Exception as e:
        # Rollback FAISS addition if DB fails
        vector_store.delete(embedding_index)
        logger.error(f"Failed to store face embedding in database: {e}")
        raise HTTPException(status_code=500, detail="Failed to store face embedding in database")

    if previous is not None:
        vector_store.delete(previous.embedding_index)

    blink = await BlinkProfileRepository.get(db, user.id)
    step = registration_step(True, blink is not None)

    processing_time = (time.time() - start_time) * 1000
    logger.info(f"Enrolled face for user {user.id} in {processing_time:.1f}ms")

    return FaceRegistrationResponse(
        success=True,
        message="Face registered",
        model_version=face_service.model_version,
        replaced_previous=previous is not None,
        registration_step=step
    )


@app.post(
    "/register/blink",
    response_model=BlinkRegistrationResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid input"},
        409: {"model": ErrorResponse, "description": "Face not registered yet"},
        422: {"model": ErrorResponse, "description": "No double blink in the clip"}
    },
    summary="Enrol the double-blink baseline",
    description="""
    Store a clip of the user blinking twice and the blink profile measured
    from it. Requires a registered face. Re-uploading overwrites the clip.
    """
)
async def register_blink(
    video: UploadFile = File(..., description="Double-blink video"),
    user: UserDB = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    if await FaceEmbeddingRepository.get_active(db, user.id) is None:
        raise HTTPException(status_code=409, detail="Register your face before your blink pattern")

    validate_video_file(video)
    video_bytes = await read_upload(video, max_bytes=MAX_VIDEO_BYTES)

    profile = analyze_blink_clip(video_bytes, video.filename)
    check = verify_blink(profile)
    if not check.verified:
        raise HTTPException(
            status_code=422,
            detail=f"Blink pattern not usable ({check.reason}, {profile.blink_count} blinks found). "
                   f"Please record a clear double blink."
        )

    object_path = f"{user.id}/{BLINK_OBJECT_STEM}{_extension(video.filename)}"
    previous = await BlinkProfileRepository.get(db, user.id)

    try:
        media_storage.upload(BLINK_BUCKET, object_path, video_bytes, upsert=True)
    except StorageError as e:
        logger.error(f"Failed to store blink clip: {e}")
        raise HTTPException(status_code=500, detail="Failed to store blink video")
    video_url = media_storage.get_public_url(BLINK_BUCKET, object_path)

    await BlinkProfileRepository.upsert(
        db,
        user_id=user.id,
        video_path=object_path,
        video_url=video_url,
        video_sha256=sha256_hex(video_bytes),
        blink_count=profile.blink_count,
        interval_ms=profile.interval_ms,
        mean_duration_ms=profile.mean_duration_ms,
        frames_analyzed=profile.frames_analyzed
    )

    if previous is not None and previous.video_path != object_path:
        media_storage.delete(BLINK_BUCKET, previous.video_path)

    return BlinkRegistrationResponse(
        success=True,
        message="Blink pattern stored",
        blink_video_url=video_url,
        profile=BlinkProfileOut(
            blink_count=profile.blink_count,
            interval_ms=profile.interval_ms,
            mean_duration_ms=profile.mean_duration_ms,
            frames_analyzed=profile.frames_analyzed
        ),
        registration_step=STEP_COMPLETE
    )


# ============================================================================
# CHECK-IN
# ============================================================================
@app.post(
    "/checkin/face",
    response_model=FaceCheckResponse,
    responses={
        409: {"model": ErrorResponse, "description": "Registration incomplete or stale embedding"},
        422: {"model": ErrorResponse, "description": "No face detected"}
    },
    summary="Check-in step 1: face",
    description="""
    Compare a fresh face photo with the enrolled embedding. A match opens a
    check-in session waiting for the blink step; a mismatch is recorded as a
    rejected session and can be retried with a new photo.
    """
)
async def checkin_face(
    image: UploadFile = File(..., description="Face image to verify"),
    user: UserDB = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    start_time = time.time()

    enrolled = await FaceEmbeddingRepository.get_active(db, user.id)
    blink = await BlinkProfileRepository.get(db, user.id)
    step = registration_step(enrolled is not None, blink is not None)
    if step != STEP_COMPLETE:
        raise HTTPException(status_code=409, detail=f"Registration incomplete (next step: {step})")

    if enrolled.model_version != face_service.model_version:
        raise HTTPException(
            status_code=409,
            detail=f"Face was enrolled with {enrolled.model_version}; please register your face again"
        )

    validate_image_file(image)
    image_bytes = await read_upload(image)
    embedding = embed_face(image_bytes)

    result = verify_face(embedding, enrolled.embedding, threshold=FACE_MATCH_THRESHOLD)
    status = STATUS_BLINK_PENDING if result.verified else STATUS_REJECTED

    db_session = await CheckInRepository.create_session(
        db,
        user_id=user.id,
        status=status,
        face_distance=result.distance,
        ttl_seconds=CHECKIN_SESSION_TTL_SECONDS
    )

    processing_time = (time.time() - start_time) * 1000
    logger.info(
        f"Face check for user {user.id}: {'accepted' if result.verified else 'rejected'} "
        f"(distance: {result.distance:.4f}) in {processing_time:.1f}ms"
    )

    return FaceCheckResponse(
        verified=result.verified,
        distance=result.distance,
        threshold=result.threshold,
        session=CheckInRepository.db_to_schema(db_session),
        next_step="blink" if result.verified else None,
        processing_time_ms=round(processing_time, 2)
    )


@app.post(
    "/checkin/blink",
    response_model=BlinkCheckResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Unknown session"},
        409: {"model": ErrorResponse, "description": "Session not waiting for a blink"},
        410: {"model": ErrorResponse, "description": "Session expired"}
    },
    summary="Check-in step 2: double blink",
    description="""
    Verify a fresh double-blink clip against the registered blink profile.
    Success completes the session and records attendance. Each failure uses
    one attempt; the session fails when no attempts are left.
    """
)
async def checkin_blink(
    session_id: str = Form(..., description="Session returned by /checkin/face"),
    video: UploadFile = File(..., description="Double-blink video"),
    user: UserDB = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    start_time = time.time()

    db_session = await CheckInRepository.get_for_user(db, session_id, user.id)
    if db_session is None:
        raise HTTPException(status_code=404, detail=f"Check-in session '{session_id}' not found")
    if db_session.status != STATUS_BLINK_PENDING:
        raise HTTPException(status_code=409, detail=f"Check-in session is {db_session.status}")
    if datetime.utcnow() > db_session.expires_at:
        await CheckInRepository.expire(db, db_session)
        raise HTTPException(status_code=410, detail="Check-in session expired, verify your face again")

    baseline = await BlinkProfileRepository.get(db, user.id)
    if baseline is None:
        raise HTTPException(status_code=409, detail="Blink pattern not registered")

    validate_video_file(video)
    video_bytes = await read_upload(video, max_bytes=MAX_VIDEO_BYTES)

    # Use up an attempt before the clip is evaluated
    if not await CheckInRepository.claim_blink_attempt(db, db_session, MAX_BLINK_ATTEMPTS):
        raise HTTPException(
            status_code=409,
            detail=f"Check-in session is {db_session.status} with no blink attempts left"
        )

    if same_media(sha256_hex(video_bytes), baseline.video_sha256):
        check = BlinkVerification(False, REASON_REPLAY, None, baseline.interval_ms)
    else:
        try:
            profile = analyze_blink_clip(video_bytes, video.filename)
        except HTTPException as e:
            reason = REASON_UNREADABLE if e.status_code == 400 else REASON_UNAVAILABLE
            await CheckInRepository.record_blink_failure(db, db_session, reason, MAX_BLINK_ATTEMPTS)
            raise
        check = verify_blink(profile, baseline_interval_ms=baseline.interval_ms)

    attendance = None
    if check.verified:
        record = await AttendanceRepository.complete_checkin(
            db, db_session, check.interval_ms, check.reason
        )
        if record is None:
            raise HTTPException(status_code=409, detail=f"Check-in session is {db_session.status}")
        attendance = AttendanceRepository.db_to_schema(record)
    else:
        await CheckInRepository.record_blink_failure(
            db, db_session, check.reason, MAX_BLINK_ATTEMPTS
        )

    attempts_left = (
        MAX_BLINK_ATTEMPTS - db_session.blink_attempts
        if db_session.status == STATUS_BLINK_PENDING else 0
    )

    processing_time = (time.time() - start_time) * 1000
    logger.info(
        f"Blink check for user {user.id}: {check.reason} "
        f"(attempt {db_session.blink_attempts}/{MAX_BLINK_ATTEMPTS}) in {processing_time:.1f}ms"
    )

    return BlinkCheckResponse(
        verified=check.verified,
        reason=check.reason,
        interval_ms=check.interval_ms,
        baseline_interval_ms=check.baseline_interval_ms,
        attempts_left=attempts_left,
        session=CheckInRepository.db_to_schema(db_session),
        attendance=attendance,
        processing_time_ms=round(processing_time, 2)
    )


@app.get(
    "/checkin/sessions/{session_id}",
    response_model=CheckInSession,
    responses={404: {"model": ErrorResponse, "description": "Unknown session"}},
    summary="Get a check-in session"
)
async def get_checkin_session(
    session_id: str,
    user: UserDB = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    db_session = await CheckInRepository.get_for_user(db, session_id, user.id)
    if db_session is None:
        raise HTTPException(status_code=404, detail=f"Check-in session '{session_id}' not found")
    return CheckInRepository.db_to_schema(db_session)


@app.get(
    "/attendance",
    response_model=AttendanceList,
    summary="List my attendance",
    description="Accepted check-ins of the current user, newest first."
)
async def list_attendance(
    skip: int = Query(0, ge=0, description="Number of records to skip"),
    limit: int = Query(100, ge=1, le=1000, description="Maximum number of records to return"),
    user: UserDB = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    total_count = await AttendanceRepository.count_for_user(db, user.id)
    records = await AttendanceRepository.list_for_user(db, user.id, skip=skip, limit=limit)

    return AttendanceList(
        total_count=total_count,
        records=[AttendanceRepository.db_to_schema(r) for r in records]
    )


# ============================================================================
# Maintenance
# ============================================================================
@app.post(
    "/maintenance/rebuild-index",
    summary="Rebuild FAISS index",
    description="Rebuild the FAISS index to reclaim space from replaced enrolments."
)
async def rebuild_index(user: UserDB = Depends(get_current_user)):
    start_time = time.time()

    count_before = vector_store.count
    count_after = vector_store.rebuild_index()

    processing_time = (time.time() - start_time) * 1000
    logger.info(f"User {user.id} rebuilt the FAISS index")

    return {
        "success": True,
        "message": "Index rebuilt successfully",
        "faiss_vectors_before": count_before,
        "faiss_vectors_after": count_after,
        "processing_time_ms": round(processing_time, 2)
    }


# Exception handlers
@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc):
    """Custom HTTP exception handler."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": "HTTPException",
            "detail": exc.detail
        },
        headers=exc.headers
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc):
    """General exception handler."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "InternalServerError",
            "detail": "An unexpected error occurred"
        }
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8000")))
