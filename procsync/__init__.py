"""procsync -- stored procedure synchronization with a version ledger."""

__version__ = "0.1.0"
