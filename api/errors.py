from __future__ import annotations

from fastapi import HTTPException

from services.errors import RateLimitError, RetryExhaustedError, classify_error, user_message


STATUS_BY_CATEGORY = {
    "validation": 400,
    "conflict": 409,
    "not_found": 404,
    "access_denied": 403,
    "transient_remote": 503,
    "permanent_remote": 502,
    "internal": 500,
}


def to_http_error(err: BaseException) -> HTTPException:
    category = classify_error(err)
    root = err.last_error if isinstance(err, RetryExhaustedError) else err
    status_code = 429 if isinstance(root, RateLimitError) else STATUS_BY_CATEGORY[category]
    return HTTPException(status_code=status_code, detail={"code": category, "message": user_message(err)})
