"""Error taxonomy for the training core.

All operation handlers raise one of these; the serving layer maps them
to 4xx responses. Nothing here is retried by the core.
"""

from __future__ import annotations


class TrainingError(Exception):
    """Base class for expected, caller-visible failures."""

    pass


class NotFoundError(TrainingError):
    """Unknown session, student, trainer or promotion id."""

    def __init__(self, kind: str, identifier: str, detail: str | None = None):
        self.kind = kind
        self.identifier = identifier
        message = f"{kind} '{identifier}' not found"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class InvalidStateError(TrainingError):
    """Operation not allowed in the current lifecycle state."""

    pass


class PolicyViolationError(TrainingError):
    """Operation disabled by session settings or out of allowed range."""

    pass


class InvalidConfigError(TrainingError):
    """Malformed session creation config."""

    pass
