"""Uniform response envelope helpers"""
from typing import Any, Optional, Dict

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from app.core.exceptions import ValidationError


def success_response(data: Any = None, message: Optional[str] = None) -> Dict[str, Any]:
    """Build ``{success: true, data?, message?}``"""
    body: Dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = jsonable_encoder(data)
    if message:
        body["message"] = message
    return body


def envelope(data: Any = None, message: Optional[str] = None, status_code: int = 200) -> JSONResponse:
    """Envelope wrapped in a JSONResponse, for non-200 success codes"""
    return JSONResponse(status_code=status_code, content=success_response(data, message))


def parse_id(value: Any, name: str = "id") -> int:
    """Positive integer path id, or ValidationError"""
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {name}", field=name)
    if parsed <= 0:
        raise ValidationError(f"Invalid {name}", field=name)
    return parsed
