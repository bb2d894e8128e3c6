"""Append-only, hash-chained JSON-lines sink for audit records.

Each record occupies exactly one ``\\n``-terminated line written with a single
``write`` call while holding an exclusive ``flock`` on the file. The previous
hash is read back from the file under that lock, so threads and separate worker
processes sharing one log extend a single chain and never interleave partial
lines. Every line carries ``prev`` (hash of the preceding
record) and ``hash`` = sha256(prev + canonical JSON of the record), which lets
review tooling detect edits or deletions.

Readers must treat the file strictly sequentially and skip a trailing partial
line left behind by a crash mid-write.
"""
from __future__ import annotations
import fcntl
import hashlib
import json
import logging
import os
import threading
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional, Tuple

from chronicle.exceptions import LogWriteFailure

logger = logging.getLogger(__name__)

GENESIS_HASH = '0' * 64
_TAIL_CHUNK = 4096


def _canonical(record: Dict[str, Any]) -> str:
    return json.dumps(record, sort_keys=True, separators=(',', ':'), default=str, ensure_ascii=False)


def chain_hash(prev: str, record: Dict[str, Any]) -> str:
    return hashlib.sha256((prev + _canonical(record)).encode('utf-8')).hexdigest()


def _strip_chain(entry: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in entry.items() if k not in ('prev', 'hash')}


def _tail_hash(fh) -> Tuple[str, bool]:
    """Hash of the last complete record in ``fh`` and whether the file ends mid-line."""
    fh.seek(0, os.SEEK_END)
    end = fh.tell()
    if end == 0:
        return GENESIS_HASH, False
    fh.seek(end - 1)
    needs_newline = fh.read(1) != b'\n'
    pos = end
    tail = b''
    # walk backwards until we hold at least one complete line
    while pos > 0:
        step = min(_TAIL_CHUNK, pos)
        pos -= step
        fh.seek(pos)
        tail = fh.read(step) + tail
        if tail.count(b'\n') >= 2 or (pos == 0 and b'\n' in tail):
            break
    complete = tail[:tail.rfind(b'\n')] if b'\n' in tail else b''
    for raw in reversed(complete.split(b'\n')):
        try:
            entry = json.loads(raw.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError):
            continue
        if isinstance(entry, dict) and isinstance(entry.get('hash'), str):
            return entry['hash'], needs_newline
    return GENESIS_HASH, needs_newline


class AppendOnlyLogStore:
    def __init__(self, path: str, fsync: bool = True):
        self.path = os.fspath(path)
        self.fsync = fsync
        self._lock = threading.Lock()

    def append(self, record: Dict[str, Any]) -> bool:
        """Durably append one record. Returns False (and logs) if the write failed.

        A failure is never retried; a lost audit write must not block the caller.
        """
        try:
            self._append(record)
            return True
        except LogWriteFailure as e:
            logger.error('Failed to write audit log: %s', e.message, exc_info=e.__cause__)
            return False

    def _append(self, record: Dict[str, Any]) -> None:
        with self._lock:
            try:
                directory = os.path.dirname(self.path)
                if directory:
                    os.makedirs(directory, exist_ok=True)
                with open(self.path, 'a+b') as fh:
                    # other processes (workers, the trigger script) may share this file
                    fcntl.flock(fh.fileno(), fcntl.LOCK_EX)
                    try:
                        prev, needs_newline = _tail_hash(fh)
                        digest = chain_hash(prev, record)
                        line = json.dumps(
                            dict(record, prev=prev, hash=digest),
                            separators=(',', ':'), default=str, ensure_ascii=False,
                        ) + '\n'
                        if needs_newline:
                            # terminate a partial line left by a crashed writer
                            line = '\n' + line
                        fh.write(line.encode('utf-8'))
                        fh.flush()
                        if self.fsync:
                            os.fsync(fh.fileno())
                    finally:
                        fcntl.flock(fh.fileno(), fcntl.LOCK_UN)
            except (OSError, TypeError, ValueError) as e:
                raise LogWriteFailure(f'{self.path}: {e}') from e


def read_records(path: str, include_chain: bool = False) -> Iterator[Dict[str, Any]]:
    """Yield records in write order, skipping malformed or incomplete lines."""
    if not os.path.exists(path):
        return
    with open(path, 'rb') as fh:
        for lineno, raw in enumerate(fh, start=1):
            if not raw.endswith(b'\n'):
                logger.warning('Ignoring incomplete trailing line %d in %s', lineno, path)
                return
            raw = raw.strip()
            if not raw:
                continue
            try:
                entry = json.loads(raw.decode('utf-8'))
            except (UnicodeDecodeError, json.JSONDecodeError):
                logger.warning('Skipping malformed audit line %d in %s', lineno, path)
                continue
            if not isinstance(entry, dict):
                logger.warning('Skipping non-object audit line %d in %s', lineno, path)
                continue
            yield entry if include_chain else _strip_chain(entry)


@dataclass(frozen=True)
class ChainReport:
    total: int
    skipped: int
    broken_at: Optional[int] = None  # 1-based index of the first record that fails

    @property
    def ok(self) -> bool:
        return self.broken_at is None


def verify_chain(path: str) -> ChainReport:
    total = 0
    skipped = 0
    prev = GENESIS_HASH
    if not os.path.exists(path):
        return ChainReport(total=0, skipped=0)
    with open(path, 'rb') as fh:
        for raw in fh:
            if not raw.endswith(b'\n') or not raw.strip():
                if raw.strip():
                    skipped += 1
                continue
            try:
                entry = json.loads(raw.decode('utf-8'))
            except (UnicodeDecodeError, json.JSONDecodeError):
                skipped += 1
                continue
            if not isinstance(entry, dict):
                skipped += 1
                continue
            total += 1
            if entry.get('prev') != prev or entry.get('hash') != chain_hash(prev, _strip_chain(entry)):
                return ChainReport(total=total, skipped=skipped, broken_at=total)
            prev = entry['hash']
    return ChainReport(total=total, skipped=skipped)


__all__ = ['AppendOnlyLogStore', 'read_records', 'verify_chain', 'ChainReport', 'GENESIS_HASH', 'chain_hash']
