"""Record validation package."""

from balancebook.validation.validator import RecordValidator

__all__ = ["RecordValidator"]
