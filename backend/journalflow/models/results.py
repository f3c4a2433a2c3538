from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class QueryError:
    """后端错误的统一表示：只保留 message，不跨越查询层抛异常"""

    message: str


@dataclass(frozen=True)
class QueryResult(Generic[T]):
    data: Optional[T] = None
    error: Optional[QueryError] = None
    # 仅分页/计数查询会带上 count
    count: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, message: str) -> "QueryResult[T]":
        return cls(data=None, error=QueryError(message=message))


@dataclass(frozen=True)
class UsernameCheck:
    available: bool
    error: Optional[QueryError] = None
