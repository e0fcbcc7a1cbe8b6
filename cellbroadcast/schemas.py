"""
Pydantic schemas for request/response validation.

This module contains:
- Request models for incoming data validation
- Response models for API responses
"""

from typing import Any, Optional

from pydantic import BaseModel, Field


# =============================================================================
# Pydantic Request Models
# =============================================================================

class CellBroadcastValues(BaseModel):
    """
    Column values for an insert or update.

    Only the fields present in the request are written; unknown fields are
    rejected. The identity is assigned by storage and cannot be supplied.
    """
    sub_id: Optional[int] = None
    slot_index: Optional[int] = None
    geo_scope: Optional[int] = Field(None, description="Geographical scope")
    plmn: Optional[str] = None
    lac: Optional[int] = Field(None, description="Location area code")
    cid: Optional[int] = Field(None, description="Cell id")
    serial_number: Optional[int] = None
    service_category: Optional[int] = None
    language: Optional[str] = Field(None, description="Language code")
    body: Optional[str] = Field(None, description="Message body")
    format: Optional[int] = Field(None, description="Message format")
    priority: Optional[int] = Field(None, description="Message priority")
    etws_warning_type: Optional[int] = None
    cmas_message_class: Optional[int] = None
    cmas_category: Optional[int] = None
    cmas_response_type: Optional[int] = None
    cmas_severity: Optional[int] = None
    cmas_urgency: Optional[int] = None
    cmas_certainty: Optional[int] = None
    received_time: Optional[int] = Field(None, description="Received time, epoch millis")
    message_broadcasted: Optional[bool] = None
    geometries: Optional[str] = None
    maximum_wait_time: Optional[int] = Field(None, description="Maximum wait time in seconds")

    model_config = {
        "extra": "forbid",
        "json_schema_extra": {
            "examples": [
                {
                    "geo_scope": 1,
                    "plmn": "310260",
                    "serial_number": 100,
                    "service_category": 4370,
                    "body": "Presidential alert",
                    "received_time": 1735689600000,
                    "message_broadcasted": False
                }
            ]
        }
    }

    def to_values(self) -> dict:
        """Fields explicitly set in the request, keyed by column name."""
        return self.model_dump(exclude_unset=True)


class UpdateRequest(BaseModel):
    """Request body for PATCH /cellbroadcasts."""
    values: CellBroadcastValues
    selection: Optional[str] = Field(None, description="WHERE clause with ? placeholders")
    selection_args: list[str] = Field(default_factory=list)


# =============================================================================
# Pydantic Response Models
# =============================================================================

class InsertResponse(BaseModel):
    """Identity and address of the inserted row; both null on a soft failure."""
    id: Optional[int] = None
    uri: Optional[str] = None


class CountResponse(BaseModel):
    """Number of rows updated or deleted."""
    count: int = Field(..., ge=0)


class QueryResponse(BaseModel):
    """Rows matching a query, restricted to the requested projection."""
    data: list[dict[str, Any]] = Field(default_factory=list)
    count: int = Field(..., ge=0)


class ErrorResponse(BaseModel):
    """Response model for error responses."""
    code: str = Field(..., description="Error code")
    detail: str = Field(..., description="Error description")


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
