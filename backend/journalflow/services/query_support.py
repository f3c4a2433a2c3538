"""
查询层公共工具：执行、降级重试、关联归一化、计数聚合、分页换算

中文注释:
1. 后端错误统一转换为 QueryError，不向调用方抛异常。
2. 降级策略显式化：先跑带关联（作者名）的查询，失败后只重试一次精简列查询。
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Mapping, Optional, TypeVar

import httpx
from postgrest.exceptions import APIError

from journalflow.models.results import QueryError, QueryResult

logger = logging.getLogger("journalflow.query")

T = TypeVar("T")


def _extract_data(response: Any) -> Any:
    """兼容 supabase-py 不同版本的响应格式"""
    if response is None:
        return None
    data = getattr(response, "data", None)
    if data is not None:
        return data
    if isinstance(response, tuple) and len(response) == 2:
        return response[1]
    return None


def _extract_count(response: Any) -> Optional[int]:
    if response is None:
        return None
    count = getattr(response, "count", None)
    if isinstance(count, int):
        return count
    return None


def _error_message(err: Exception) -> str:
    message = getattr(err, "message", None)
    if isinstance(message, str) and message.strip():
        return message
    return str(err) or err.__class__.__name__


def run_query(builder: Any) -> QueryResult[Any]:
    """执行一个 PostgREST 查询构造器，返回 QueryResult（data/count/error）"""
    try:
        response = builder.execute()
    except (APIError, httpx.HTTPError) as e:
        return QueryResult(data=None, error=QueryError(message=_error_message(e)))
    return QueryResult(data=_extract_data(response), count=_extract_count(response))


def with_fallback(
    enriched: Callable[[], QueryResult[T]],
    minimal: Callable[[], QueryResult[T]],
    *,
    label: str = "query",
) -> QueryResult[T]:
    """
    两步降级策略：先执行 enriched；若报错则执行一次 minimal，并只返回 minimal 的结果。

    中文注释: 调用方永远看不到第一次的错误（除非重试也失败，此时看到的是重试的错误）。
    """
    first = enriched()
    if first.error is None:
        return first

    logger.info("[%s] enriched query failed, retrying minimal: %s", label, first.error.message)
    return minimal()


def first_or_none(value: Any) -> Any:
    """一对一关系被后端以数组形式返回时取第一个元素（空数组 -> None）"""
    if isinstance(value, list):
        return value[0] if value else None
    return value


def normalize_join(rows: Optional[Iterable[Mapping[str, Any]]], field: str) -> Optional[list[dict]]:
    if rows is None:
        return None
    out: list[dict] = []
    for row in rows:
        item = dict(row)
        item[field] = first_or_none(item.get(field))
        out.append(item)
    return out


def build_count_map(rows: Iterable[Mapping[str, Any]]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for row in rows:
        sid = row.get("submission_id")
        if sid is None:
            continue
        key = str(sid)
        counts[key] = counts.get(key, 0) + 1
    return counts


def page_range(page: int, page_size: int) -> tuple[int, int]:
    """1-based 页码换算为 PostgREST 的闭区间 [from, to]"""
    start = max(int(page) - 1, 0) * int(page_size)
    return start, start + int(page_size) - 1


def parse_rows(model: type[T], rows: Any) -> Optional[list[T]]:
    if rows is None:
        return None
    return [model.model_validate(row) for row in rows]  # type: ignore[attr-defined]


def parse_row(model: type[T], row: Any) -> Optional[T]:
    if isinstance(row, list):
        row = first_or_none(row)
    if not row:
        return None
    return model.model_validate(row)  # type: ignore[attr-defined]


def map_result(result: QueryResult[Any], fn: Callable[[Any], Any]) -> QueryResult[Any]:
    """对成功结果的 data 做转换，保留 error/count"""
    if result.error is not None:
        return QueryResult(data=None, error=result.error, count=result.count)
    return QueryResult(data=fn(result.data), error=None, count=result.count)
