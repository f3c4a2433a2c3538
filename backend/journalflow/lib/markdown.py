from __future__ import annotations

from typing import Optional

import bleach
import markdown as markdown_lib

# 中文注释:
# - 白名单策略：不在列表内的标签/属性直接剥离（strip），而不是转义后显示。
# - 渲染器开启表格与单换行转 <br>（接近 GFM + breaks）。
ALLOWED_TAGS = [
    "p",
    "br",
    "strong",
    "em",
    "code",
    "pre",
    "blockquote",
    "ul",
    "ol",
    "li",
    "h1",
    "h2",
    "h3",
    "h4",
    "h5",
    "h6",
    "a",
    "img",
    "hr",
    "table",
    "thead",
    "tbody",
    "tr",
    "th",
    "td",
]

ALLOWED_ATTRIBUTES = ["href", "title", "target", "rel", "src", "alt"]

_EXTENSIONS = ["tables", "fenced_code", "nl2br", "sane_lists"]


def render_markdown(text: Optional[str]) -> str:
    html = markdown_lib.markdown(text or "", extensions=_EXTENSIONS, output_format="html")
    return bleach.clean(
        html,
        tags=ALLOWED_TAGS,
        attributes=ALLOWED_ATTRIBUTES,
        strip=True,
        strip_comments=True,
    )
