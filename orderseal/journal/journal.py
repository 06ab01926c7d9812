"""
Event journals for orderseal.

Every settlement and sale event passes through EventJournal.emit().

MemoryJournal keeps the emitted event objects in order.

FileJournal is an append-only, hash-chained, Ed25519-signed JSONL log:

    entry_hash    = SHA-256(JCS({index, previous_hash, timestamp,
                                 event_type, data_hash}))
    data_hash     = SHA-256(JCS(data))
    previous_hash = entry_hash of the previous line ("0" * 64 for the first)
    signature     = Ed25519(bytes.fromhex(entry_hash)), base64url

Changing any field of any line breaks either that line's signature or the
next line's previous_hash.
"""

import json
import logging
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from orderseal.core.canonical import canonical_hash
from orderseal.core.crypto import Ed25519KeyManager
from orderseal.core.exceptions import JournalError
from orderseal.core.time import journal_timestamp

logger = logging.getLogger(__name__)

GENESIS_HASH = "0" * 64


class EventJournal:
    """Sink for emitted events. Subclasses decide where they go."""

    def emit(self, event: Any) -> None:
        raise NotImplementedError


class MemoryJournal(EventJournal):
    """Ordered in-memory record of emitted events."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._events: List[Any] = []

    def emit(self, event: Any) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> List[Any]:
        with self._lock:
            return list(self._events)

    def of_type(self, event_type: str) -> List[Any]:
        return [e for e in self.events if e.event_type == event_type]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)


@dataclass
class JournalEntry:
    """A single line of a FileJournal"""
    index: int
    previous_hash: str
    timestamp: str
    event_type: str
    data: dict
    signature: str = ""

    def data_hash(self) -> str:
        return canonical_hash(self.data)

    def compute_hash(self) -> str:
        """Hash of this entry for chaining and signing"""
        return canonical_hash({
            "index": self.index,
            "previous_hash": self.previous_hash,
            "timestamp": self.timestamp,
            "event_type": self.event_type,
            "data_hash": self.data_hash(),
        })

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "previous_hash": self.previous_hash,
            "timestamp": self.timestamp,
            "event_type": self.event_type,
            "data": self.data,
            "signature": self.signature,
        }

    @staticmethod
    def from_dict(data: dict) -> "JournalEntry":
        try:
            return JournalEntry(
                index=data["index"],
                previous_hash=data["previous_hash"],
                timestamp=data["timestamp"],
                event_type=data["event_type"],
                data=data["data"],
                signature=data["signature"],
            )
        except KeyError as exc:
            raise JournalError(f"Journal entry is missing field {exc.args[0]!r}") from exc


@dataclass
class JournalReport:
    """Result of verifying a journal file."""
    total_entries: int = 0
    valid_signatures: int = 0
    invalid_signatures: int = 0
    chain_valid: bool = True
    violations: List[str] = field(default_factory=list)
    by_type: Dict[str, int] = field(default_factory=dict)
    head_hash: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return self.chain_valid and self.invalid_signatures == 0 and not self.violations

    def to_dict(self) -> dict:
        return {
            "total_entries": self.total_entries,
            "valid_signatures": self.valid_signatures,
            "invalid_signatures": self.invalid_signatures,
            "chain_valid": self.chain_valid,
            "violations": list(self.violations),
            "by_type": dict(self.by_type),
            "head_hash": self.head_hash,
            "is_valid": self.is_valid,
        }


def read_entries(path: Path) -> List[JournalEntry]:
    """Parse every non-blank line of a journal file. Raises JournalError on bad JSON."""
    entries = []
    with open(path, "r", encoding="utf-8") as f:
        for line_num, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                raw = json.loads(line)
            except json.JSONDecodeError as e:
                raise JournalError(f"Invalid JSON at line {line_num}: {e}") from e
            if not isinstance(raw, dict):
                raise JournalError(f"Line {line_num} is not a JSON object")
            entries.append(JournalEntry.from_dict(raw))
    return entries


def verify_entries(entries: List[JournalEntry], public_key_hex: str) -> JournalReport:
    """
    Check sequence, chain linkage and signatures of already-parsed entries.
    Collects every violation instead of stopping at the first.
    """
    report = JournalReport(total_entries=len(entries))
    expected_prev = GENESIS_HASH

    for position, entry in enumerate(entries):
        report.by_type[entry.event_type] = report.by_type.get(entry.event_type, 0) + 1

        if entry.index != position:
            report.violations.append(
                f"Sequence gap at line {position + 1}: expected index {position}, got {entry.index}"
            )
        if entry.previous_hash != expected_prev:
            report.chain_valid = False
            report.violations.append(
                f"Chain break at index {entry.index}: "
                f"expected {expected_prev}, got {entry.previous_hash}"
            )

        entry_hash = entry.compute_hash()
        if Ed25519KeyManager.verify_detached(bytes.fromhex(entry_hash), entry.signature, public_key_hex):
            report.valid_signatures += 1
        else:
            report.invalid_signatures += 1
            report.violations.append(f"Invalid signature at index {entry.index}")

        expected_prev = entry_hash

    report.head_hash = expected_prev if entries else None
    return report


class FileJournal(EventJournal):
    """
    Append-only signed journal on disk.

    State survives process restart: an existing file is loaded and verified
    against the signing key on construction.
    """

    def __init__(self, path: Path, signing_key: Ed25519KeyManager):
        self.path = Path(path)
        self.signing_key = signing_key
        self._lock = threading.Lock()
        self.entries: List[JournalEntry] = []

        if self.path.exists():
            self.entries = read_entries(self.path)
            self.verify_or_raise()

    def emit(self, event: Any) -> None:
        self.append(event.event_type, event.to_dict())

    def append(self, event_type: str, data: dict) -> JournalEntry:
        """Sign, chain and persist one entry. State advances only after the write."""
        with self._lock:
            entry = JournalEntry(
                index=len(self.entries),
                previous_hash=self.entries[-1].compute_hash() if self.entries else GENESIS_HASH,
                timestamp=journal_timestamp(),
                event_type=event_type,
                data=data,
            )
            entry.signature = self.signing_key.sign(bytes.fromhex(entry.compute_hash()))
            self._write_entry(entry)
            self.entries.append(entry)
            return entry

    def get_entries_by_type(self, event_type: str) -> List[JournalEntry]:
        return [e for e in self.entries if e.event_type == event_type]

    def verify(self) -> JournalReport:
        return verify_entries(self.entries, self.signing_key.public_key_hex)

    def verify_or_raise(self) -> None:
        """Verify journal integrity or raise JournalError"""
        report = self.verify()
        if not report.is_valid:
            raise JournalError(
                f"Journal {self.path} failed verification",
                {"violations": len(report.violations), "first": report.violations[0]},
            )

    def _write_entry(self, entry: JournalEntry) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry.to_dict(), ensure_ascii=False) + "\n")
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            raise JournalError(f"Failed to write journal entry: {e}") from e
        logger.debug("Journal entry %d (%s) written to %s", entry.index, entry.event_type, self.path)


def verify_journal_file(path: Path, public_key_hex: str) -> JournalReport:
    """Load and verify a journal file with only the signer's public key."""
    return verify_entries(read_entries(Path(path)), public_key_hex)
