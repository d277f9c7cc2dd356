from typing import Any, Optional

from pydantic import BaseModel


class ErrorDetail(BaseModel):
    message: str
    field: Optional[str] = None


class ApiResponse(BaseModel):
    """
    Uniform envelope returned by every entry point. Routes serialize it with
    `response_model_exclude_unset`, so `data`/`error` only appear when given.
    """
    status: bool
    message: str
    data: Optional[Any] = None
    error: Optional[ErrorDetail] = None
