"""
Translate engine errors into HTTP responses.
"""
from fastapi import HTTPException

from leadrouter.errors import InvalidAmount, LeadRoutingError


def to_http(exc: Exception) -> HTTPException:
    if isinstance(exc, LeadRoutingError):
        return HTTPException(status_code=exc.http_status, detail=exc.to_dict())
    if isinstance(exc, InvalidAmount):
        return HTTPException(
            status_code=InvalidAmount.http_status,
            detail={"error": InvalidAmount.code, "message": str(exc)},
        )
    return HTTPException(status_code=500, detail={"error": "internal_error", "message": "Internal error"})
