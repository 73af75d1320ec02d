"""
Autosave orchestration for continuously-edited structured records.

Given a record whose fields keep changing (a form), the engine decides when
to persist, which subset to send, how to retry failed transports, and how to
undo and redo edits, without blocking the caller.

Quick Start:
    >>> from autosave import AutosaveOrchestrator, AutosaveConfig, FormState, as_transport
    >>> form = FormState({"name": "", "email": ""})
    >>> autosave = AutosaveOrchestrator(
    ...     form,
    ...     as_transport(api.update_profile),
    ...     AutosaveConfig(debounce_ms=500),
    ...     on_saved=lambda result: print("saved" if result.ok else result.error),
    ... )
    >>> form.set_value("name", "Jane")   # saved after 500ms of quiet

Architecture:
    Change intake:
        ValueSource change callback -> pending reconciliation -> debounce timer

    Save cycle:
        should_save -> select_payload -> validate -> array handlers
        -> key map / map_payload -> payload cache -> with_retry(transport)

    Commit:
        new BaselineSnapshot version -> history entry -> pending rebase
        -> dirty markers cleared

Modules:
    - orchestrator: AutosaveOrchestrator and its save cycle
    - transport: with_retry, compose_transports, parallel_transports, as_transport
    - pending: pending-change tracking against a baseline
    - history: undo/redo stacks, atomic grouping, hotkeys
    - snapshot_model: SaveResult, SaveContext, BaselineSnapshot, Patch, HistoryEntry
    - config: AutosaveConfig, RetryConfig, UndoConfig (pydantic)
    - errors: AutosaveError and subclasses
    - log: namespaced logging sink
    - scheduler: injectable timers
    - testing: VirtualScheduler and RecordingTransport
"""

from autosave.cache import PayloadCache, ValidationCache, stable_signature
from autosave.config import AutosaveConfig, RetryConfig, UndoConfig, create_config
from autosave.errors import AutosaveError, CancellationError, TransportError, ValidationError
from autosave.form_state import FormState, ValueSource
from autosave.history import HistoryManager, KeyEvent, UndoHotkeys, diff_to_patches
from autosave.log import get_logger
from autosave.metrics import AutosaveMetrics, MetricsCollector
from autosave.orchestrator import ArrayFieldHandler, AutosaveOrchestrator, SaveGateState, default_should_save
from autosave.payload import dirty_paths, pick_changed, serialize_dates
from autosave.pending import PendingChangeTracker, is_pending, reconcile_pending_field
from autosave.scheduler import AsyncioScheduler, Scheduler, TimerHandle
from autosave.snapshot_model import (
    BaselineSnapshot,
    CancellationToken,
    HistoryEntry,
    HistoryState,
    Patch,
    SaveContext,
    SavePayload,
    SaveResult,
)
from autosave.transport import Transport, as_transport, compose_transports, parallel_transports, with_retry
from autosave.validation import PayloadValidator, Validator, model_validator

__all__ = [
    # Orchestration
    'AutosaveOrchestrator',
    'ArrayFieldHandler',
    'SaveGateState',
    'default_should_save',
    # Transports
    'Transport',
    'with_retry',
    'compose_transports',
    'parallel_transports',
    'as_transport',
    # Records
    'SaveResult',
    'SaveContext',
    'SavePayload',
    'CancellationToken',
    'BaselineSnapshot',
    'Patch',
    'HistoryEntry',
    'HistoryState',
    # Pending / history
    'PendingChangeTracker',
    'is_pending',
    'reconcile_pending_field',
    'HistoryManager',
    'KeyEvent',
    'UndoHotkeys',
    'diff_to_patches',
    # Payload / validation / caching
    'pick_changed',
    'dirty_paths',
    'serialize_dates',
    'Validator',
    'PayloadValidator',
    'model_validator',
    'PayloadCache',
    'ValidationCache',
    'stable_signature',
    # Configuration
    'AutosaveConfig',
    'RetryConfig',
    'UndoConfig',
    'create_config',
    # Errors
    'AutosaveError',
    'TransportError',
    'ValidationError',
    'CancellationError',
    # Infrastructure
    'FormState',
    'ValueSource',
    'Scheduler',
    'AsyncioScheduler',
    'TimerHandle',
    'AutosaveMetrics',
    'MetricsCollector',
    'get_logger',
]
