"""
State persistence abstraction.

Separates the key-value persistence collaborator from the state store
for testability. The whole state tree is saved as one JSON document
under a single key.
"""

import json
from pathlib import Path
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class StatePersistence(Protocol):
    """
    Key-value storage for serialized state trees.

    Implementations:
    - JsonStatePersistence: File-based persistence (production)
    - MemoryStatePersistence: In-memory storage (testing)

    Implementations may raise on I/O or decode errors; StateStore catches
    and logs them.
    """

    def load(self, key: str) -> dict[str, Any] | None:
        """Load the document stored under key. Returns None if absent."""
        ...

    def save(self, key: str, data: dict[str, Any]) -> None:
        """Persist a document under key."""
        ...


class JsonStatePersistence:
    """
    File-based storage using one JSON file per key.

    Keeps a .bak copy of the previous save.
    """

    def __init__(self, state_dir: Path | str = "state"):
        self.state_dir = Path(state_dir)
        self.state_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.state_dir / f"{key}.json"

    def load(self, key: str) -> dict[str, Any] | None:
        path = self._path(key)
        if not path.exists():
            return None
        data = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"{path} does not hold a state document")
        return data

    def save(self, key: str, data: dict[str, Any]) -> None:
        path = self._path(key)

        # Backup previous save
        if path.exists():
            backup = path.with_suffix(".json.bak")
            backup.write_text(path.read_text(encoding="utf-8"), encoding="utf-8")

        path.write_text(json.dumps(data, indent=2), encoding="utf-8")


class MemoryStatePersistence:
    """
    In-memory storage for testing.

    Documents round-trip through JSON so tests see the same
    serialization behavior as the file store.
    """

    def __init__(self):
        self.documents: dict[str, str] = {}
        self.save_count = 0

    def load(self, key: str) -> dict[str, Any] | None:
        raw = self.documents.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    def save(self, key: str, data: dict[str, Any]) -> None:
        self.documents[key] = json.dumps(data)
        self.save_count += 1
