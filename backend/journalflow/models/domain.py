from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict

# === 领域实体模型 (Pydantic v2) ===
# 中文注释:
# - 数据归 Supabase 所有，这里只是渲染/乐观计算用的只读副本。
# - 所有模型都忽略未知列，避免后端加字段导致解析失败。


class SubmissionStatus(str, Enum):
    SUBMITTED = "submitted"
    IN_REVIEW = "in_review"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class Decision(str, Enum):
    ACCEPT = "accept"
    MINOR = "minor"
    MAJOR = "major"
    REJECT = "reject"


class ReviewSlotStatus(str, Enum):
    OPEN = "open"
    CLAIMED = "claimed"
    EXPIRED = "expired"
    COMPLETED = "completed"

    @classmethod
    def allowed_next(cls, current: str) -> set[str]:
        """
        审稿名额状态机：

        - open -> claimed
        - claimed -> expired / completed
        - expired / completed 为终态（不支持回到 open）
        """
        c = (current or "").strip().lower()
        if c == cls.OPEN.value:
            return {cls.CLAIMED.value}
        if c == cls.CLAIMED.value:
            return {cls.EXPIRED.value, cls.COMPLETED.value}
        return set()

    @classmethod
    def sources_of(cls, target: "ReviewSlotStatus") -> list[str]:
        """可以迁移到 target 的前置状态（写入时作为 status 条件）"""
        return [s.value for s in cls if target.value in cls.allowed_next(s.value)]


class OpinionStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class ReplyRole(str, Enum):
    AUTHOR = "author"
    REVIEWER = "reviewer"


class UserRole(str, Enum):
    AUTHOR = "author"
    REVIEWER = "reviewer"
    DEPUTY_EDITOR = "deputy_editor"
    ADMIN = "admin"


class _Record(BaseModel):
    model_config = ConfigDict(extra="ignore", use_enum_values=True)


class UserSummary(_Record):
    """关联查询 users(username) 返回的作者/审稿人展示信息"""

    id: Optional[str] = None
    username: Optional[str] = None


class UserProfile(_Record):
    """public.users 中的一行（角色 + 三个独立能力开关）"""

    id: str
    username: Optional[str] = None
    role: Optional[UserRole] = None
    can_submit: bool = False
    can_review: bool = False
    can_comment: bool = False


class SubmissionListItem(_Record):
    id: str
    title: str
    updated_at: Optional[datetime] = None
    status: SubmissionStatus
    author: Optional[UserSummary] = None


class SubmissionListItemWithMeta(SubmissionListItem):
    comments_count: int = 0
    reviews_count: int = 0
    # 只有 in_review 列表才统计名额数
    slots_count: Optional[int] = None


class SubmissionDetail(_Record):
    id: Optional[str] = None
    title: str
    abstract: Optional[str] = None
    content_md: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    status: SubmissionStatus
    decision: Optional[Decision] = None
    author_id: Optional[str] = None
    author: Optional[UserSummary] = None
    keywords: Optional[list[str]] = None
    version_major: Optional[int] = None
    version_minor: Optional[int] = None
    version_label: Optional[str] = None


class CommentRecord(_Record):
    id: str
    created_at: Optional[datetime] = None
    body_md: Optional[str] = None
    author: Optional[UserSummary] = None


class ReviewOpinionRecord(_Record):
    id: str
    created_at: Optional[datetime] = None
    body_md: Optional[str] = None
    reviewer_id: Optional[str] = None
    status: Optional[OpinionStatus] = None
    decision: Optional[Decision] = None
    author_reply_md: Optional[str] = None
    reviewer: Optional[UserSummary] = None


class ReviewOpinionReplyRecord(_Record):
    id: str
    review_opinion_id: str
    submission_id: str
    author_id: Optional[str] = None
    role: ReplyRole
    body_md: Optional[str] = None
    created_at: Optional[datetime] = None
    author: Optional[UserSummary] = None


class ReviewSlot(_Record):
    id: str
    submission_id: str
    reviewer_id: Optional[str] = None
    status: ReviewSlotStatus
    claimed_at: Optional[datetime] = None
    due_at: Optional[datetime] = None


class AnnouncementRecord(_Record):
    id: str
    title: str
    body_md: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    author_id: Optional[str] = None


class StatIndex(_Record):
    key: str
    value: Any = None


class OwnSubmissionRow(_Record):
    """个人中心“我的投稿”列表行"""

    id: str
    title: str
    status: SubmissionStatus
    updated_at: Optional[datetime] = None


class OwnReviewOpinionRow(_Record):
    """个人中心“我的审稿意见”列表行"""

    id: str
    submission_id: str
    status: Optional[OpinionStatus] = None
    decision: Optional[Decision] = None
    created_at: Optional[datetime] = None


class SubmissionForm(BaseModel):
    """投稿/编辑表单（keywords 为逗号分隔的原始输入）"""

    title: str = Field("", max_length=500)
    abstract: str = Field("", max_length=20_000)
    content_md: str = ""
    keywords: str = ""
    author_name: Optional[str] = None
    author_email: Optional[str] = None
    author_affiliation: Optional[str] = None
