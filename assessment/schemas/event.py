"""
Event envelope published on the event bus
"""
from typing import Any, Dict

from pydantic import BaseModel, Field


class EventEnvelope(BaseModel):
    id: str
    name: str
    ts: str  # ISO-8601 UTC
    payload: Dict[str, Any] = Field(default_factory=dict)
    version: int = 1

    class Config:
        frozen = True
