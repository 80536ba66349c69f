"""
Generation state held by the studio: one in-flight round per user.

State changes only through ``reduce(state, action)``; ``GenerationStore``
serializes dispatches and owns the cancel token of the current round.
``GenerationStores`` hands out one store per user id.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from threading import Lock
from typing import Any, Callable, Dict, List, Optional

from canvas_inference.generation.types import CancellationToken

CANCELLED_MESSAGE = "Generation cancelled."


class ActionType(Enum):
    START = "start"
    STATUS = "status"
    PROGRESS = "progress"
    SUCCESS = "success"
    ERROR = "error"
    CANCEL = "cancel"
    CLEAR = "clear"


@dataclass(frozen=True)
class Action:
    type: ActionType
    payload: Any = None

    @classmethod
    def start(cls) -> "Action":
        return cls(ActionType.START)

    @classmethod
    def status(cls, message: str) -> "Action":
        return cls(ActionType.STATUS, message)

    @classmethod
    def progress(cls, value: int) -> "Action":
        return cls(ActionType.PROGRESS, value)

    @classmethod
    def success(cls, results: List[Any], message: Optional[str] = None) -> "Action":
        return cls(ActionType.SUCCESS, (list(results), message))

    @classmethod
    def error(cls, message: str) -> "Action":
        return cls(ActionType.ERROR, message)

    @classmethod
    def cancel(cls) -> "Action":
        return cls(ActionType.CANCEL)

    @classmethod
    def clear(cls) -> "Action":
        return cls(ActionType.CLEAR)


@dataclass(frozen=True)
class GenerationState:
    is_generating: bool = False
    progress: int = 0
    status_message: Optional[str] = None
    results: tuple = field(default_factory=tuple)
    error: Optional[str] = None

    @property
    def was_cancelled(self) -> bool:
        return self.error == CANCELLED_MESSAGE


def reduce(state: GenerationState, action: Action) -> GenerationState:
    """Pure transition function."""
    kind = action.type
    if kind is ActionType.START:
        return GenerationState(is_generating=True, status_message="Initializing...")
    if kind in (ActionType.STATUS, ActionType.PROGRESS) and not state.is_generating:
        # Late reports from a finished or cancelled round
        return state
    if kind is ActionType.STATUS:
        return replace(state, status_message=action.payload)
    if kind is ActionType.PROGRESS:
        return replace(state, progress=max(0, min(100, int(action.payload))))
    if kind is ActionType.SUCCESS:
        results, message = action.payload
        return replace(
            state,
            is_generating=False,
            results=tuple(results),
            progress=100,
            status_message=message or "Done!",
        )
    if kind is ActionType.ERROR:
        return replace(state, is_generating=False, error=action.payload, results=(), status_message=None)
    if kind is ActionType.CANCEL:
        return replace(state, is_generating=False, progress=0, error=CANCELLED_MESSAGE, status_message=None)
    if kind is ActionType.CLEAR:
        return replace(state, results=(), error=None, status_message=None)
    raise ValueError(f"Unknown action: {kind}")


class GenerationStore:
    """Thread-safe holder of ``GenerationState``."""

    def __init__(self, initial: Optional[GenerationState] = None):
        self._state = initial or GenerationState()
        self._token: Optional[CancellationToken] = None
        self._listeners: List[Callable[[GenerationState], None]] = []
        self._lock = Lock()

    @property
    def state(self) -> GenerationState:
        with self._lock:
            return self._state

    def subscribe(self, listener: Callable[[GenerationState], None]) -> None:
        self._listeners.append(listener)

    def dispatch(self, action: Action) -> GenerationState:
        with self._lock:
            self._state = reduce(self._state, action)
            state = self._state
        for listener in list(self._listeners):
            listener(state)
        return state

    def begin_round(self, token: Optional[CancellationToken] = None) -> CancellationToken:
        """Start a new round and return its cancel token."""
        token = token or CancellationToken()
        with self._lock:
            self._token = token
        self.dispatch(Action.start())
        return token

    def cancel(self) -> bool:
        """Cancel the running round; returns False when nothing was running."""
        with self._lock:
            token = self._token
            running = self._state.is_generating
        if token is None or not running:
            return False
        token.cancel()
        self.dispatch(Action.cancel())
        return True


class GenerationStores:
    """Per-user ``GenerationStore`` instances, created on first access."""

    def __init__(self, factory: Callable[[], GenerationStore] = GenerationStore):
        self._factory = factory
        self._stores: Dict[str, GenerationStore] = {}
        self._lock = Lock()

    def for_user(self, user_id: str) -> GenerationStore:
        with self._lock:
            store = self._stores.get(user_id)
            if store is None:
                store = self._stores[user_id] = self._factory()
            return store

    def __contains__(self, user_id: str) -> bool:
        with self._lock:
            return user_id in self._stores
