from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from journalflow.models.domain import Decision, UserRole


class DecisionRequest(BaseModel):
    """编辑决定：status 与 decision 分开存储，decision 可为 null（尚未给出建议）"""

    status: Literal["accepted", "rejected", "in_review"]
    decision: Optional[Decision] = None


class CommentCreate(BaseModel):
    body_md: str = Field(..., max_length=20_000)


class ReviewOpinionCreate(BaseModel):
    body_md: str = Field(..., max_length=50_000)
    decision: Decision

    @field_validator("body_md")
    @classmethod
    def validate_body(cls, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("review opinion body cannot be empty")
        return trimmed


class ReplyCreate(BaseModel):
    body_md: str = Field(..., max_length=20_000)


class AuthorReplyUpdate(BaseModel):
    author_reply_md: str = Field(..., max_length=20_000)


class SessionTokens(BaseModel):
    access_token: str = Field(..., min_length=1)
    refresh_token: str = Field(..., min_length=1)


class AnnouncementCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    body_md: Optional[str] = Field(None, max_length=50_000)


class AnnouncementUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    body_md: Optional[str] = Field(None, max_length=50_000)


class PermissionsUpdate(BaseModel):
    role: Optional[UserRole] = None
    can_submit: Optional[bool] = None
    can_review: Optional[bool] = None
    can_comment: Optional[bool] = None


class UsernameUpdate(BaseModel):
    username: str = Field(..., min_length=1, max_length=64)
