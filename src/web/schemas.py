from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


class ArticleCreate(BaseModel):
    """POST /api/v1/articles 请求体"""

    title: str = Field(..., max_length=255)
    content: str

    @field_validator("title", "content")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not (v or "").strip():
            raise ValueError("must not be empty")
        try:
            v.encode("utf-8")
        except UnicodeEncodeError:
            raise ValueError("must be valid UTF-8 text") from None
        return v


def format_validation_error(exc) -> str:
    """把 pydantic 的错误列表压成一行，返回给前端"""
    parts = []
    for err in exc.errors():
        loc = ".".join(str(x) for x in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg', 'invalid')}" if loc else str(err.get("msg", "invalid")))
    return "; ".join(parts) or "invalid request"
