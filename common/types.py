"""Shared data type definitions (SecretObject, ChunkRecord, WorkItem)."""

import asyncio
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from common.constants import (
    CHUNK_DATA_KEY,
    LABEL_GENERATION,
    LABEL_ORDER,
    LABEL_VERSION,
    UNKNOWN_GENERATION,
)


@dataclass
class SecretObject:
    """
    A labeled object in the secret store.

    Attributes:
        name: Object name, unique within the namespace
        labels: Label map used for selection
        data: Payload fields, already decoded to raw bytes
    """
    name: str
    labels: Dict[str, str] = field(default_factory=dict)
    data: Dict[str, bytes] = field(default_factory=dict)

    @property
    def generation(self) -> str:
        return self.labels.get(LABEL_GENERATION, UNKNOWN_GENERATION)

    @property
    def version(self) -> Optional[str]:
        return self.labels.get(LABEL_VERSION)

    @property
    def order(self) -> Optional[int]:
        """Parsed order label, or None when missing or not a non-negative integer."""
        try:
            value = int(self.labels[LABEL_ORDER])
        except (KeyError, ValueError):
            return None
        return value if value >= 0 else None

    @property
    def payload(self) -> Optional[bytes]:
        return self.data.get(CHUNK_DATA_KEY)


@dataclass(frozen=True)
class ChunkRecord:
    """
    One restorable chunk of a committed generation.
    """
    name: str
    order: int
    data: bytes


@dataclass
class WorkItem:
    """
    A queued unit of pending work for the committer.

    Attributes:
        label: Description used in diagnostics
        commit: Whether a successful result must be committed
        operation: Local operation returning an errno (0 on success)
        reply: Future resolved with the errno delivered to the caller
    """
    label: str
    commit: bool
    operation: Callable[[], int]
    reply: asyncio.Future
