"""Request schemas for operation and job endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class OperationRequest(BaseModel):
    """Body accepted by ``POST|PUT|DELETE /api/operations/{name}``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    params: Dict[str, Any] = Field(default_factory=dict)
    eta: Optional[datetime] = None
    retry_after_seconds: Optional[int] = Field(default=None, ge=0)
