"""In-memory index: secret name -> generation, plus the shared sync state."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple


class SecretIndex:
    """
    Tracks every chunk secret known to exist so stale ones can be collected.

    Entries are added when a chunk create is confirmed or a secret is seen
    during recovery, and removed only once a delete is confirmed.
    """

    def __init__(self):
        self._index: Dict[str, str] = {}

    def add(self, name: str, generation: str) -> None:
        """Record a secret; an existing entry keeps its generation."""
        self._index.setdefault(name, generation)

    def remove(self, name: str) -> bool:
        """
        Forget a secret.

        Returns:
            True if the secret was tracked, False otherwise
        """
        return self._index.pop(name, None) is not None

    def get(self, name: str) -> Optional[str]:
        return self._index.get(name)

    def stale(self, current_generation: str) -> List[Tuple[str, str]]:
        """
        List secrets whose generation differs from current_generation.

        Returns:
            (name, generation) pairs, in insertion order
        """
        return [
            (name, generation)
            for name, generation in self._index.items()
            if generation != current_generation
        ]

    def generations(self) -> Dict[str, int]:
        """Count of tracked secrets per generation."""
        counts: Dict[str, int] = {}
        for generation in self._index.values():
            counts[generation] = counts.get(generation, 0) + 1
        return counts

    def __contains__(self, name: str) -> bool:
        return name in self._index

    def __len__(self) -> int:
        return len(self._index)


@dataclass
class SyncState:
    """
    State shared by the recoverer, uploader and collector.

    Attributes:
        index: Known chunk secrets
        metadata_exists: Whether the metadata secret has been seen or created;
            set once and never re-verified against the store
        generation: Newest confirmed generation, None before the first commit
        recovered: Whether the cold-start recovery pass has completed
    """
    index: SecretIndex = field(default_factory=SecretIndex)
    metadata_exists: bool = False
    generation: Optional[str] = None
    recovered: bool = False
