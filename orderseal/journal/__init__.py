"""
orderseal Event Journal - where settlement and sale events go.
"""

from orderseal.journal.journal import (
    EventJournal,
    FileJournal,
    JournalEntry,
    JournalReport,
    MemoryJournal,
    verify_journal_file,
)

__all__ = [
    "EventJournal",
    "FileJournal",
    "JournalEntry",
    "JournalReport",
    "MemoryJournal",
    "verify_journal_file",
]
