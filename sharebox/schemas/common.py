"""
Response envelopes shared by every sharebox endpoint.

Successful calls return {"success": true, "data": ...}; failures, including
the storage errors mapped in sharebox.main, return
{"success": false, "error": <status label>, "message": <detail>}.
"""
from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class APIResponse(BaseModel, Generic[T]):
    success: bool = True
    data: T | None = None


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    message: str
