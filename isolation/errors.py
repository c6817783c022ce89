"""
Isolation Error Hierarchy

Unified exception hierarchy for the isolation game service.
All custom exceptions inherit from IsolationError for easy catching and filtering.

Usage:
    from isolation.errors import InvalidPositionError, InvalidStateError

    try:
        engine.apply_human_move(session_id, Position(row=3, col=4))
    except InvalidPositionError as e:
        logger.warning(f"Rejected move: {e.message}")

Caller-visible errors (InvalidStateError, InvalidPositionError,
SessionNotFoundError) are raised before any mutation, so the canonical
session is unchanged when one of them propagates.
"""

from __future__ import annotations

from typing import Any

__all__ = [
    "EvaluatorUnavailableError",
    "InvalidPositionError",
    "InvalidStateError",
    "IsolationError",
    "ModelLoadError",
    "PersistenceError",
    "SessionNotFoundError",
]


class IsolationError(Exception):
    """Base exception for all isolation service errors.

    Attributes:
        code: Machine-readable error code for categorization
        message: Human-readable error description
        context: Additional context for debugging
    """
    code: str = "ISOLATION_ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"[{self.code}] {self.message} ({ctx})"
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "code": self.code,
            "message": self.message,
            "context": self.context,
        }


# =============================================================================
# Game Rules Errors
# =============================================================================


class InvalidStateError(IsolationError):
    """Operation attempted in the wrong phase or on the wrong turn.

    Examples: moving when it is not your turn, placing starting positions
    twice, undoing in an ended game.
    """
    code: str = "INVALID_STATE"


class InvalidPositionError(IsolationError):
    """Destination is out of bounds, occupied, or not a legal move."""
    code: str = "INVALID_POSITION"

    def __init__(
        self,
        message: str,
        row: int | None = None,
        col: int | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, context=context)
        if row is not None:
            self.context["row"] = row
        if col is not None:
            self.context["col"] = col


class SessionNotFoundError(IsolationError):
    """Unknown session identifier."""
    code: str = "NOT_FOUND"

    def __init__(self, session_id: str, context: dict[str, Any] | None = None):
        super().__init__(f"Game {session_id} not found", context=context)
        self.session_id = session_id
        self.context["session_id"] = session_id


# =============================================================================
# AI Errors
# =============================================================================


class EvaluatorUnavailableError(IsolationError):
    """Learned evaluator could not produce a score.

    Never surfaced to callers: the fallback evaluator catches it and
    substitutes the heuristic score for that single call.
    """
    code: str = "EVALUATOR_UNAVAILABLE"


class ModelLoadError(IsolationError):
    """Failed to load a value network checkpoint."""
    code: str = "MODEL_LOAD_ERROR"

    def __init__(
        self,
        message: str,
        model_path: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, context=context)
        if model_path:
            self.context["model_path"] = model_path


# =============================================================================
# Storage Errors
# =============================================================================


class PersistenceError(IsolationError):
    """Statistics, pattern, game-record or model I/O failed.

    Call sites log this and carry on in memory; it is never fatal to play.
    """
    code: str = "PERSISTENCE_FAILURE"

    def __init__(
        self,
        message: str,
        path: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, context=context)
        if path:
            self.context["path"] = path
