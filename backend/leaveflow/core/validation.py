from __future__ import annotations

from typing import Any

from fastapi import HTTPException, status


def bad_request(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


def forbidden(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


def not_found(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


def require_non_empty_text(value: Any, field_name: str) -> str:
    text = str(value or "").strip()
    if not text:
        raise bad_request(f"{field_name} is required")
    return text


def require_positive_days(value: Any, detail: str = "Number of days must be greater than zero") -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise bad_request(detail)
    return value
