"""Common Pydantic schemas."""

from typing import Any, Optional

from pydantic import BaseModel, Field


class Money(BaseModel):
    """Money representation with amount in minor units."""

    amount: int = Field(..., ge=0, description="Amount in minor units (e.g., cents)")
    currency: str = Field(..., min_length=3, max_length=3, pattern=r"^[A-Z]{3}$", description="ISO 4217 currency code")


class Problem(BaseModel):
    """RFC 9457 Problem Details response."""

    type: Optional[str] = Field(None, description="Problem type URI")
    title: str = Field(..., description="Short human-readable summary")
    status: int = Field(..., description="HTTP status code")
    detail: Optional[str] = Field(None, description="Human-readable explanation")
    instance: Optional[str] = Field(None, description="URI reference for this occurrence")
    code: Optional[str] = Field(None, description="Application-specific error code")
    retryable: Optional[bool] = Field(None, description="Whether the operation can be retried")
    conflicting_resource: Optional[dict[str, Any]] = Field(None, description="Resource that caused a conflict")
