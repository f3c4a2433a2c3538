"""
Submission Workflow: 投稿版本号、编辑决定、审稿名额、审稿意见回复权限

中文注释:
1. 这里全部是纯函数：只计算“下一步状态/要写入的字段”，真正的写入由 Service 层完成。
2. 时间统一使用 UTC；需要稳定测试时通过 now/today 参数注入。
3. 后端（RLS）才是最终裁决者，这里的校验只用于前端提示。
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterable, Optional

from journalflow.models.domain import (
    Decision,
    ReplyRole,
    ReviewSlot,
    ReviewSlotStatus,
    SubmissionStatus,
    UserProfile,
    UserRole,
)

REVIEW_SLOT_DUE_DAYS = 14

DECISION_STATUSES = {
    SubmissionStatus.ACCEPTED.value,
    SubmissionStatus.REJECTED.value,
    SubmissionStatus.IN_REVIEW.value,
}

EDITOR_ROLES = {UserRole.DEPUTY_EDITOR.value, UserRole.ADMIN.value}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _utc_today() -> date:
    return _utc_now().date()


@dataclass(frozen=True)
class VersionBump:
    major: int
    minor: int
    label: str


def format_version_label(today: date, major: int, minor: int) -> str:
    return f"{today.strftime('%Y%m%d')}_V{major}.{minor}"


def initial_version(today: Optional[date] = None) -> VersionBump:
    """新投稿从 1.0 开始"""
    day = today or _utc_today()
    return VersionBump(major=1, minor=0, label=format_version_label(day, 1, 0))


def compute_next_version(
    current_major: Optional[int],
    current_minor: Optional[int],
    *,
    today: Optional[date] = None,
) -> VersionBump:
    """
    内容编辑后的下一个版本号：major 不变，minor + 1，label 使用保存当天日期。

    中文注释: 旧数据可能没有版本列，此时两者都按 0 处理（结果为 0.1）。
    """
    major = int(current_major or 0)
    minor = int(current_minor or 0) + 1
    day = today or _utc_today()
    return VersionBump(major=major, minor=minor, label=format_version_label(day, major, minor))


def parse_keywords(raw: Optional[str | Iterable[str]]) -> list[str]:
    """'alpha, beta, ,gamma' -> ['alpha', 'beta', 'gamma']"""
    if raw is None:
        return []
    parts = raw.split(",") if isinstance(raw, str) else list(raw)
    return [p.strip() for p in parts if p and p.strip()]


@dataclass(frozen=True)
class EditPolicy:
    """已有编辑决定（录用/拒稿）的稿件是否还允许作者修改"""

    lock_after_decision: bool = False

    def can_edit(self, status: Optional[str]) -> bool:
        if not self.lock_after_decision:
            return True
        s = (status or "").strip().lower()
        return s not in {SubmissionStatus.ACCEPTED.value, SubmissionStatus.REJECTED.value}


def build_decision_update(
    status: str,
    decision: Optional[str],
    *,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """
    编辑决定：单步原子状态变更，没有“待定”中间态。

    - accepted: accepted_at=now, rejected_at=None
    - rejected: rejected_at=now, accepted_at=None
    - in_review: 两个时间戳都清空
    """
    s = (status or "").strip().lower()
    if s not in DECISION_STATUSES:
        raise ValueError(f"Invalid decision status '{status}'. Allowed: {sorted(DECISION_STATUSES)}")
    if decision is not None:
        decision = Decision(decision).value

    timestamp = (now or _utc_now()).isoformat()
    return {
        "status": s,
        "decision": decision,
        "updated_at": timestamp,
        "accepted_at": timestamp if s == SubmissionStatus.ACCEPTED.value else None,
        "rejected_at": timestamp if s == SubmissionStatus.REJECTED.value else None,
    }


def build_claim_update(
    reviewer_id: str,
    *,
    now: Optional[datetime] = None,
    due_days: int = REVIEW_SLOT_DUE_DAYS,
) -> dict[str, Any]:
    """认领名额：claimed_at=now，due_at=now+14 天（重复认领直接覆盖，由后端负责冲突）"""
    rid = str(reviewer_id or "").strip()
    if not rid:
        raise ValueError("reviewer_id is required to claim a review slot")
    claimed_at = now or _utc_now()
    due_at = claimed_at + timedelta(days=due_days)
    return {
        "reviewer_id": rid,
        "status": ReviewSlotStatus.CLAIMED.value,
        "claimed_at": claimed_at.isoformat(),
        "due_at": due_at.isoformat(),
    }


def build_slot_status_update(status: ReviewSlotStatus) -> dict[str, Any]:
    return {"status": status.value}


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def find_overdue_slots(slots: Iterable[ReviewSlot], now: Optional[datetime] = None) -> list[ReviewSlot]:
    """
    找出已过 due_at 且仍处于 claimed 的名额。

    中文注释: 客户端自身从不自动过期，这个函数只给外部定时任务使用。
    """
    current = _as_utc(now or _utc_now())
    out: list[ReviewSlot] = []
    for slot in slots:
        if slot.status != ReviewSlotStatus.CLAIMED.value or slot.due_at is None:
            continue
        if _as_utc(slot.due_at) < current:
            out.append(slot)
    return out


def resolve_reply_role(
    user_id: Optional[str],
    submission_author_id: Optional[str],
    opinion_reviewer_id: Optional[str],
) -> Optional[ReplyRole]:
    """
    审稿意见回复权限：稿件作者 -> author；该意见的审稿人 -> reviewer；其他人不可回复。

    中文注释: 每次渲染/请求都基于当前会话重新计算，不要跨会话缓存。
    """
    if not user_id:
        return None
    if submission_author_id and user_id == submission_author_id:
        return ReplyRole.AUTHOR
    if opinion_reviewer_id and user_id == opinion_reviewer_id:
        return ReplyRole.REVIEWER
    return None


def build_reply_payload(
    *,
    user_id: str,
    submission_id: str,
    opinion_id: str,
    role: ReplyRole,
    body_md: str,
) -> dict[str, Any]:
    return {
        "submission_id": submission_id,
        "review_opinion_id": opinion_id,
        "author_id": user_id,
        "role": role.value,
        "body_md": body_md,
    }


def build_close_opinion_update(*, now: Optional[datetime] = None) -> dict[str, Any]:
    return {"status": "closed", "closed_at": (now or _utc_now()).isoformat()}


def is_editor(profile: Optional[UserProfile]) -> bool:
    return bool(profile and profile.role in EDITOR_ROLES)


def can_submit(profile: Optional[UserProfile]) -> bool:
    return bool(profile and profile.can_submit)


def can_review(profile: Optional[UserProfile]) -> bool:
    return bool(profile and profile.can_review)


def can_comment(profile: Optional[UserProfile]) -> bool:
    return bool(profile and profile.can_comment)
