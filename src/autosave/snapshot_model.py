"""
Typed records exchanged between the orchestrator, transports and history.

Design Philosophy: Correct by Construction
- Immutable records (frozen dataclasses)
- SaveResult is either a success or a failure, never both
- UUID-based identity and explicit versions for baselines
- Data only, no object references, so snapshots serialize to plain dicts
"""

import asyncio
import copy
import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple

from autosave.errors import AutosaveError
from nestedpath.paths import set_by_path

SavePayload = Dict[str, Any]


@dataclass(frozen=True)
class SaveResult:
    """Outcome of a transport call.

    Build with ``SaveResult.success(...)`` or ``SaveResult.failure(...)``.
    """
    ok: bool
    version: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    error: Optional[AutosaveError] = None
    code: Optional[str] = None

    def __post_init__(self):
        if self.ok and self.error is not None:
            raise ValueError("A successful SaveResult cannot carry an error")
        if not self.ok and self.error is None:
            raise ValueError("A failed SaveResult must carry an error")

    @classmethod
    def success(cls, version: Optional[str] = None, metadata: Optional[Dict[str, Any]] = None) -> 'SaveResult':
        return cls(ok=True, version=version, metadata=dict(metadata or {}))

    @classmethod
    def failure(cls, error: Any, code: Optional[str] = None) -> 'SaveResult':
        """Failed result; error may be any exception or message."""
        wrapped = AutosaveError.from_unknown(error)
        return cls(ok=False, error=wrapped, code=code or wrapped.code)

    @property
    def skipped(self) -> bool:
        return self.ok and bool(self.metadata.get("skipped"))


class CancellationToken:
    """Cooperative cancellation flag checked at retry boundaries."""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        """Block until cancel() is called."""
        await self._event.wait()


@dataclass(frozen=True)
class SaveContext:
    """Per-call context handed to a transport."""
    token: Optional[CancellationToken] = None
    timestamp: float = field(default_factory=time.time)
    retry_count: int = 0

    def with_retry_count(self, retry_count: int) -> 'SaveContext':
        return replace(self, retry_count=retry_count)

    @property
    def is_cancelled(self) -> bool:
        return self.token is not None and self.token.is_cancelled


@dataclass(frozen=True)
class BaselineSnapshot:
    """Versioned snapshot of the last known persisted values.

    Pending changes are always computed against an explicit baseline, and a
    successful save produces the next version through advance().
    """
    id: str  # UUID string
    version: int
    timestamp: float
    values: Dict[str, Any]
    label: str = ""

    @classmethod
    def create(cls, values: Dict[str, Any], label: str = "initial") -> 'BaselineSnapshot':
        """Create version 0 from a deep copy of values."""
        return cls(
            id=str(uuid.uuid4()),
            version=0,
            timestamp=time.time(),
            values=copy.deepcopy(values),
            label=label,
        )

    def advance(self, values: Dict[str, Any], label: str = "") -> 'BaselineSnapshot':
        """Next version holding a deep copy of values."""
        return BaselineSnapshot(
            id=str(uuid.uuid4()),
            version=self.version + 1,
            timestamp=time.time(),
            values=copy.deepcopy(values),
            label=label or f"v{self.version + 1}",
        )

    def merged(self, paths_to_values: Dict[str, Any], label: str = "") -> 'BaselineSnapshot':
        """Next version with each path overwritten in a copy of the current values."""
        values = copy.deepcopy(self.values)
        for path, value in paths_to_values.items():
            set_by_path(values, path, copy.deepcopy(value))
        return self.advance(values, label=label)

    def to_dict(self) -> Dict:
        """Export to JSON-serializable dict."""
        return {
            'id': self.id,
            'version': self.version,
            'timestamp': self.timestamp,
            'label': self.label,
            'values': copy.deepcopy(self.values),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'BaselineSnapshot':
        """Import from dict (e.g., loaded from JSON)."""
        return cls(
            id=data['id'],
            version=data['version'],
            timestamp=data['timestamp'],
            values=copy.deepcopy(data['values']),
            label=data.get('label', ""),
        )


@dataclass(frozen=True)
class Patch:
    """One field's transition: undo applies prev_value, redo applies next_value."""
    name: str
    prev_value: Any
    next_value: Any

    def inverted(self) -> 'Patch':
        return Patch(self.name, self.next_value, self.prev_value)

    def to_dict(self) -> Dict:
        return {'name': self.name, 'prev_value': self.prev_value, 'next_value': self.next_value}

    @classmethod
    def from_dict(cls, data: Dict) -> 'Patch':
        return cls(name=data['name'], prev_value=data['prev_value'], next_value=data['next_value'])


@dataclass(frozen=True)
class HistoryEntry:
    """One undoable transaction.

    Analogous to a commit: an ordered group of patches applied and reverted
    together.
    """
    patches: Tuple[Patch, ...]
    label: str = ""
    timestamp: float = field(default_factory=time.time)

    @classmethod
    def create(cls, patches, label: str = "") -> 'HistoryEntry':
        return cls(patches=tuple(patches), label=label, timestamp=time.time())

    def to_dict(self) -> Dict:
        """Export to JSON-serializable dict."""
        return {
            'label': self.label,
            'timestamp': self.timestamp,
            'patches': [patch.to_dict() for patch in self.patches],
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'HistoryEntry':
        """Import from dict."""
        return cls(
            patches=tuple(Patch.from_dict(p) for p in data['patches']),
            label=data['label'],
            timestamp=data['timestamp'],
        )


@dataclass
class HistoryState:
    """Undo and redo stacks. The last element of each list is its top."""
    past: List[HistoryEntry] = field(default_factory=list)
    future: List[HistoryEntry] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            'past': [entry.to_dict() for entry in self.past],
            'future': [entry.to_dict() for entry in self.future],
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'HistoryState':
        return cls(
            past=[HistoryEntry.from_dict(e) for e in data['past']],
            future=[HistoryEntry.from_dict(e) for e in data['future']],
        )
