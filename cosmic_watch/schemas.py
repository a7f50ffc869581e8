"""Request models. Structure brings clarity."""

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class SignupRequest(BaseModel):
    name: str = Field(..., min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6)

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v):
        return v.strip() if isinstance(v, str) else v


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class PreferencesPatch(BaseModel):
    risk_threshold: Optional[Literal["low", "medium", "high", "all"]] = None
    notifications_enabled: Optional[bool] = None


class ProfileUpdate(BaseModel):
    interests: Optional[List[str]] = None
    preferences: Optional[PreferencesPatch] = None


class WatchlistCreate(BaseModel):
    """Object to monitor. Chosen for observation."""

    asteroid_id: str = Field(..., min_length=1)
    asteroid_name: str = Field(..., min_length=1)
    asteroid_data: Dict[str, Any]
    notes: Optional[str] = Field(default=None, max_length=500)

    @field_validator("asteroid_id", "asteroid_name", mode="before")
    @classmethod
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v


class WatchlistUpdate(BaseModel):
    notes: Optional[str] = Field(default=None, max_length=500)


class ChatEvent(BaseModel):
    """One frame received on the chat socket."""

    event: Literal["join-room", "send-message", "leave-room"]
    data: Any = None


class ChatMessageIn(BaseModel):
    asteroid_id: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    username: Optional[str] = None
    avatar: Optional[str] = None


class HypotheticalImpactRequest(BaseModel):
    """An asteroid as the dashboard shows it. Every field may be missing."""

    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    diameter_km: Optional[float] = Field(default=None, alias="diameterKm")
    velocity_kmh: Optional[float] = Field(default=None, alias="velocityKmh")
    miss_distance_km: Optional[float] = Field(default=None, alias="missDistanceKm")
    risk_score: Optional[Union[float, str]] = Field(default=None, alias="riskScore")
    is_hazardous: bool = Field(default=False, alias="isHazardous")
