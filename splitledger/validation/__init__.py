"""Write-boundary validation package."""

from splitledger.validation.validator import LedgerValidator, ensure_valid

__all__ = ["LedgerValidator", "ensure_valid"]
