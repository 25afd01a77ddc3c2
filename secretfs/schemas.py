"""Pydantic schemas for status endpoint responses."""

from typing import Dict, Optional
from pydantic import BaseModel


class RootResponse(BaseModel):
    """Response model for the root endpoint."""
    status: str
    service: str


class ProbeResponse(BaseModel):
    """Response model for liveness and readiness probes."""
    status: str


class CommitterStatus(BaseModel):
    """Counters of the committer loop."""
    running: bool
    pending: int
    operations: int
    batches: int
    cycles_succeeded: int
    cycles_failed: int
    cycle_in_flight: bool
    last_result: Optional[int] = None
    last_generation: Optional[str] = None


class StatusResponse(BaseModel):
    """Response model for the sync status endpoint."""
    namespace: str
    secret_base_name: str
    generation: Optional[str] = None
    recovered: bool
    metadata_exists: bool
    tracked_secrets: int
    secrets_by_generation: Dict[str, int]
    committer: CommitterStatus
