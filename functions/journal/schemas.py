"""
Pydantic schemas for the Journey Diary API.
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class MemoryImage(BaseModel):
    public_id: str
    secure_url: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    format: Optional[str] = None
    created_at: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    folder: Optional[str] = None
    context: dict[str, str] = Field(default_factory=dict)


class Memory(BaseModel):
    id: str
    title: str = "Untitled Memory"
    # Firestore records may hold structured values for these two.
    location: Any = None
    text: str = ""
    date: Any = None
    images: list[MemoryImage] = Field(default_factory=list)
    created_at: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    folder: str = "memories"


class MemoriesResponse(BaseModel):
    memories: list[Memory]
    timestamp: Optional[str] = None


class CreateMemoryResponse(BaseModel):
    success: bool
    memory: Memory
    message: str
    timestamp: str


class ImagesResponse(BaseModel):
    resources: list[dict]
    next_cursor: Optional[str] = None
    total_count: int = 0


class CloudinaryConfigResponse(BaseModel):
    cloudName: str
    isConfigured: bool
    timestamp: str


class HealthResponse(BaseModel):
    status: Literal["ok"] = "ok"
    timestamp: str
    message: str


class DeleteRequest(BaseModel):
    public_id: Optional[str] = None
    publicIds: Optional[list[str]] = None

    def ids(self) -> list[str]:
        if self.publicIds:
            return [public_id for public_id in self.publicIds if public_id]
        return [self.public_id] if self.public_id else []


class LegacyDeleteRequest(BaseModel):
    publicId: Optional[str] = None


class SessionRequest(BaseModel):
    action: Optional[str] = None
    userId: Optional[str] = None
    idToken: Optional[str] = None


class SessionResponse(BaseModel):
    success: bool
    message: str
    userId: Optional[str] = None


class SessionStatusResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    authenticated: bool
    userId: Optional[str] = None
    expiresAt: Optional[int] = None

