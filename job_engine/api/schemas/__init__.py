"""Pydantic schemas for API request/response models."""
from .envelope import ApiResponse, ResponseMeta
from .jobs import OperationRequest

__all__ = ["ApiResponse", "OperationRequest", "ResponseMeta"]
