"""Pydantic schema for the standard JSON response envelope."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class APIResponse(BaseModel):
    """Body shared by every endpoint: a success flag, a message and a payload.

    ``data`` and ``error`` are omitted from the serialized body when unset.
    """

    success: bool = Field(..., description="True when the request was handled successfully.")
    message: str = Field(..., description="Human-readable outcome message.")
    data: Any | None = Field(
        default=None,
        description="Endpoint-specific payload for successful responses.",
    )
    error: Any | None = Field(
        default=None,
        description="Machine-readable error context (code, request_id, details).",
    )
