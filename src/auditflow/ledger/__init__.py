"""tamper-evident audit ledger and its background writer"""

from .audit_ledger import (
    AuditLedger,
    IntegrityReport,
    IntegrityViolation,
    LedgerEntry,
    LedgerIntegrityError,
    LedgerIOError,
    LedgerQuery,
    LedgerStatistics,
    sanitize_report,
)
from .writer import LedgerWriter

__all__ = [
    "AuditLedger",
    "IntegrityReport",
    "IntegrityViolation",
    "LedgerEntry",
    "LedgerIntegrityError",
    "LedgerIOError",
    "LedgerQuery",
    "LedgerStatistics",
    "LedgerWriter",
    "sanitize_report",
]
