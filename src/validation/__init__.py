"""Record validation package."""

from src.validation.validator import RecordValidationError, RecordValidator

__all__ = ["RecordValidationError", "RecordValidator"]
