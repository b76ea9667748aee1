"""Recoverable session errors and their HTTP mapping."""
from __future__ import annotations


class SessionError(ValueError):
    """Base class for errors the user can fix by retrying or adjusting input."""

    status_code = 400


class SessionValidationError(SessionError):
    status_code = 400


class EmptySessionError(SessionValidationError):
    """The session has no recorded time, so there is nothing to save."""


class SessionStateError(SessionError):
    status_code = 409


class TimerStateError(SessionStateError):
    pass


class SleepStateError(SessionStateError):
    pass


class SaveInProgressError(SessionStateError):
    pass
