"""Common DTOs for API responses and error handling."""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class CamelModel(BaseModel):
    """Base model exposing camelCase JSON names while keeping snake_case attributes."""

    model_config = ConfigDict(populate_by_name=True)


class ErrorResponse(BaseModel):
    """Standard error response model."""
    success: bool = Field(False, description="Always false for errors")
    error: str = Field(..., description="Error message describing what went wrong")


class SuccessResponse(BaseModel):
    """Standard success response model."""
    success: bool = Field(True, description="Indicates the operation was successful")
    message: str | None = Field(None, description="Optional success message")


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Health status", examples=["OK"])
    timestamp: datetime = Field(..., description="Server time of the check")
    service: str = Field(..., description="Service name", examples=["LinkUp Backend API"])
    version: str = Field(..., description="API version", examples=["1.0.0"])


class RootResponse(BaseModel):
    """Root endpoint response model."""
    status: str = Field(..., description="API status", examples=["ok"])
    service: str = Field(..., description="Service name", examples=["linkup-backend"])
    version: str = Field(..., description="API version", examples=["1.0.0"])
