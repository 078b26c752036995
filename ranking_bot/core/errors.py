"""Domain errors shared by the bot cogs and the API routes."""

from __future__ import annotations


class RankingError(Exception):
    """Base class for every error raised by the ranking core."""

    code = "RANKING_ERROR"


class ValidationError(RankingError):
    """Input was rejected; the caller should surface the message and stop."""

    code = "VALIDATION_ERROR"


class NotFoundError(RankingError):
    """A guild, event, participant or score entry does not exist."""

    code = "NOT_FOUND"

    def __init__(self, kind: str, identifier: object) -> None:
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} {identifier} not found")


class StorageError(RankingError):
    """A transaction failed and was rolled back. Safe to retry the whole operation."""

    code = "STORAGE_ERROR"


__all__ = ["RankingError", "ValidationError", "NotFoundError", "StorageError"]
