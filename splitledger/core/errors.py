"""
Ledger Errors

DESIGN DECISION: The core never recovers from bad input.
It raises one of these and the caller reports the rejected write.

- ValidationError: a write was refused (fatal to that one operation)
- InputIntegrityError: a stored record is missing a number the core needs
- PermissionDeniedError: the caller may not perform this action
"""

from typing import Optional


class LedgerError(Exception):
    """Base exception for ledger operations."""
    pass


class ValidationError(LedgerError):
    """
    A write was rejected before anything was persisted.
    
    Carries the individual issues so the caller can show
    every reason at once instead of one at a time.
    """
    
    def __init__(self, message: str, issues: Optional[list] = None):
        super().__init__(message)
        self.issues = list(issues or [])


class InputIntegrityError(LedgerError):
    """A record handed to the aggregator is missing a required numeric field."""
    
    def __init__(
        self,
        message: str,
        record_id: Optional[str] = None,
        field: Optional[str] = None,
    ):
        super().__init__(message)
        self.record_id = record_id
        self.field = field


class PermissionDeniedError(LedgerError):
    """The acting user is not allowed to change this record."""
    pass
