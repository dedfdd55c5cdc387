from __future__ import annotations


class TimerValidationError(ValueError):
    pass


class NoActiveRowError(LookupError):
    pass


class RowNotFoundError(LookupError):
    pass


class BackendError(RuntimeError):
    pass
