"""
BillVault — document persistence and auto-save for spreadsheet bills.

Named bills are stored as immutable DocumentRecords in a DocumentStore.
A DocumentService performs the user-initiated file operations; an
AutoSaveScheduler periodically writes the open bill in the background.
Both talk to the spreadsheet through an EditorBridge.
"""

__version__ = "1.0.0"
__all__ = ["engine", "db", "documents", "editor", "process"]
