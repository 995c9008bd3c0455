"""Envelope shared by every JSON body the API returns."""
from typing import Any


def success_response(data: Any = None, message: str | None = None) -> dict:
    return {"status": "success", "data": data, "message": message}


def error_response(message: str, data: Any = None) -> dict:
    return {"status": "error", "data": data, "message": message}


def field_error_response(message: str, field: str) -> dict:
    """Error envelope naming the request field that failed validation."""
    return error_response(message, data={"field": field})
