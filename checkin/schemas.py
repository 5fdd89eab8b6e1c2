"""
Pydantic models for API request/response schemas
"""
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime

from checkin.config import MIN_PASSWORD_LENGTH


class SignupRequest(BaseModel):
    """Schema for creating an account"""
    email: str = Field(..., min_length=3, max_length=320, description="Login email")
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH, max_length=128, description="Password, at least 6 characters")
    full_name: str = Field(..., min_length=1, max_length=255, description="Display name")

    class Config:
        json_schema_extra = {
            "example": {
                "email": "ana@example.com",
                "password": "s3cret!",
                "full_name": "Ana Putri"
            }
        }


class User(BaseModel):
    """Schema for a user"""
    id: str = Field(..., description="User UUID")
    email: str = Field(..., description="Login email")
    full_name: str = Field(..., description="Display name")
    created_at: datetime = Field(..., description="Account creation time")
    face_registered: bool = Field(..., description="Whether a face embedding is enrolled")
    blink_video_url: Optional[str] = Field(default=None, description="Registered blink clip URL")


class AuthResponse(BaseModel):
    """Schema for signup/login responses"""
    access_token: str = Field(..., description="Bearer token")
    token_type: str = Field(default="bearer")
    user: User
    registration_step: str = Field(..., description="auth | face | blink | complete")


class MeResponse(BaseModel):
    """Schema for the current user"""
    user: User
    registration_step: str = Field(..., description="auth | face | blink | complete")


class FaceRegistrationResponse(BaseModel):
    """Schema for face enrolment response"""
    success: bool = Field(..., description="Whether the operation succeeded")
    message: str = Field(..., description="Status message")
    model_version: str = Field(..., description="Embedding model that produced the vector")
    replaced_previous: bool = Field(..., description="Whether an earlier enrolment was replaced")
    registration_step: str


class BlinkProfileOut(BaseModel):
    """Schema for a blink profile"""
    blink_count: int = Field(..., description="Blinks found in the clip")
    interval_ms: Optional[float] = Field(default=None, description="Onset gap of the double blink")
    mean_duration_ms: Optional[float] = Field(default=None, description="Mean closure duration")
    frames_analyzed: int = Field(..., description="Decoded frames")


class BlinkRegistrationResponse(BaseModel):
    """Schema for blink enrolment response"""
    success: bool
    message: str
    blink_video_url: str = Field(..., description="Public URL of the stored clip")
    profile: BlinkProfileOut
    registration_step: str

    class Config:
        json_schema_extra = {
            "example": {
                "success": True,
                "message": "Blink pattern stored",
                "blink_video_url": "/media/blinks/550e8400-e29b-41d4-a716-446655440000/blink.webm",
                "profile": {
                    "blink_count": 2,
                    "interval_ms": 433.3,
                    "mean_duration_ms": 150.0,
                    "frames_analyzed": 90
                },
                "registration_step": "complete"
            }
        }


class CheckInSession(BaseModel):
    """Schema for a check-in session"""
    id: str = Field(..., description="Session UUID")
    status: str = Field(..., description="rejected | blink_pending | complete | failed")
    face_distance: float = Field(..., description="Cosine distance of the face step")
    blink_attempts: int = Field(..., description="Blink verifications tried")
    last_blink_reason: Optional[str] = Field(default=None, description="Outcome of the last blink attempt")
    created_at: datetime
    expires_at: datetime
    completed_at: Optional[datetime] = None


class FaceCheckResponse(BaseModel):
    """Schema for the face step of a check-in"""
    verified: bool = Field(..., description="Whether the face matched")
    distance: float = Field(..., description="Cosine distance (lower is better)")
    threshold: float = Field(..., description="Acceptance threshold (distance must be below)")
    session: CheckInSession
    next_step: Optional[str] = Field(default=None, description="'blink' when the face matched")
    processing_time_ms: float

    class Config:
        json_schema_extra = {
            "example": {
                "verified": True,
                "distance": 0.18,
                "threshold": 0.4,
                "session": {
                    "id": "7d0c1b5e-9c1f-4bb8-9b3f-5c8e2a4b6d10",
                    "status": "blink_pending",
                    "face_distance": 0.18,
                    "blink_attempts": 0,
                    "last_blink_reason": None,
                    "created_at": "2024-01-15T08:00:00",
                    "expires_at": "2024-01-15T08:03:00",
                    "completed_at": None
                },
                "next_step": "blink",
                "processing_time_ms": 245.5
            }
        }


class Attendance(BaseModel):
    """Schema for an attendance record"""
    id: str
    session_id: str
    checked_in_at: datetime
    face_distance: float
    blink_interval_ms: Optional[float] = None


class BlinkCheckResponse(BaseModel):
    """Schema for the blink step of a check-in"""
    verified: bool
    reason: str = Field(..., description="ok | no_face | no_double_blink | interval_mismatch | replay")
    interval_ms: Optional[float] = None
    baseline_interval_ms: Optional[float] = None
    attempts_left: int
    session: CheckInSession
    attendance: Optional[Attendance] = None
    processing_time_ms: float


class AttendanceList(BaseModel):
    """Schema for listing attendance"""
    total_count: int
    records: List[Attendance]


class ErrorResponse(BaseModel):
    """Schema for error responses"""
    error: str = Field(..., description="Error type")
    detail: str = Field(..., description="Detailed error message")

    class Config:
        json_schema_extra = {
            "example": {
                "error": "HTTPException",
                "detail": "No face detected in the provided image"
            }
        }
