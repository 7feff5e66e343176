"""Action validation package."""

from finledger.validation.validator import ActionValidator

__all__ = ["ActionValidator"]
