"""
Delivery Queue Persistence

Snapshot and dead-letter files written with orjson. Every write goes to a
temporary sibling first and is then renamed over the target, so a crash
mid-write leaves the previous file intact. Disk I/O runs in a worker thread
bounded by PERSISTENCE_TIMEOUT_SECONDS.

Snapshot format:
    {
        "pending_messages": [QueuedMessage.to_dict(), ...],
        "dead_letter_messages": [QueuedMessage.to_dict(), ...],
        "snapshot_timestamp": <epoch-ms>
    }

Dead-letter file format: a JSON array of QueuedMessage.to_dict().
"""

import asyncio
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import orjson

from courier.core.exceptions import PersistenceError
from courier.core.logging import get_logger
from courier.delivery.models import QueuedMessage

logger = get_logger(__name__)


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Write ``data`` to ``path`` via a temp file and os.replace."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".{path.name}.tmp")
    with open(tmp_path, "wb") as fh:
        fh.write(data)
        fh.flush()
        os.fsync(fh.fileno())
    os.replace(tmp_path, path)


@dataclass
class QueueSnapshot:
    """Decoded snapshot contents."""

    pending: list[QueuedMessage] = field(default_factory=list)
    dead_letters: list[QueuedMessage] = field(default_factory=list)
    snapshot_timestamp: float = 0.0

    def to_bytes(self) -> bytes:
        return orjson.dumps({
            "pending_messages": [m.to_dict() for m in self.pending],
            "dead_letter_messages": [m.to_dict() for m in self.dead_letters],
            "snapshot_timestamp": int(self.snapshot_timestamp * 1000),
        })

    @classmethod
    def from_bytes(cls, raw: bytes) -> "QueueSnapshot":
        data = orjson.loads(raw)
        return cls(
            pending=[QueuedMessage.from_dict(m) for m in data.get("pending_messages", [])],
            dead_letters=[QueuedMessage.from_dict(m) for m in data.get("dead_letter_messages", [])],
            snapshot_timestamp=float(data["snapshot_timestamp"]) / 1000.0,
        )


class SnapshotStore:
    """
    Owner of the queue snapshot file and the dead-letter file.

    All methods raise PersistenceError on failure; the queue catches it and
    logs, so persistence problems never reach queue callers.
    """

    def __init__(
        self,
        snapshot_path: str | Path,
        dead_letter_path: str | Path,
        timeout_seconds: float = 5.0,
        clock=time.time,
    ):
        self.snapshot_path = Path(snapshot_path)
        self.dead_letter_path = Path(dead_letter_path)
        self._timeout = timeout_seconds
        self._clock = clock

    async def _run(self, func, *args, operation: str) -> Any:
        try:
            return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=self._timeout)
        except asyncio.TimeoutError as e:
            raise PersistenceError(
                f"{operation} timed out", details={"timeout_seconds": self._timeout}
            ) from e
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise PersistenceError.from_exception(e, message=f"{operation} failed") from e

    async def write_snapshot(
        self, pending: list[QueuedMessage], dead_letters: list[QueuedMessage]
    ) -> QueueSnapshot:
        snapshot = QueueSnapshot(
            pending=list(pending),
            dead_letters=list(dead_letters),
            snapshot_timestamp=self._clock(),
        )
        await self._run(
            atomic_write_bytes, self.snapshot_path, snapshot.to_bytes(), operation="Snapshot write"
        )
        return snapshot

    async def read_snapshot(self, max_age_seconds: float) -> QueueSnapshot | None:
        """
        Load the snapshot if present and younger than ``max_age_seconds``.

        A stale snapshot is never restored.
        """
        if not self.snapshot_path.exists():
            return None

        raw = await self._run(self.snapshot_path.read_bytes, operation="Snapshot read")
        try:
            snapshot = QueueSnapshot.from_bytes(raw)
        except (orjson.JSONDecodeError, KeyError, ValueError, TypeError) as e:
            raise PersistenceError.from_exception(
                e, message="Snapshot is corrupt", path=str(self.snapshot_path)
            ) from e

        age = self._clock() - snapshot.snapshot_timestamp
        if age > max_age_seconds:
            logger.warning(
                "Discarding stale queue snapshot",
                age_seconds=round(age, 1),
                max_age_seconds=max_age_seconds,
            )
            return None
        return snapshot

    async def write_dead_letters(self, dead_letters: list[QueuedMessage]) -> None:
        payload = orjson.dumps([m.to_dict() for m in dead_letters], option=orjson.OPT_INDENT_2)
        await self._run(
            atomic_write_bytes, self.dead_letter_path, payload, operation="Dead-letter write"
        )
