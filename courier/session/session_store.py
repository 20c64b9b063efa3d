"""
Session Store - Durable Authentication State

Owns ``<SESSION_PATH>/session.json`` and its sibling backup directory
``<SESSION_PATH>-backup/``. The backup copy is the only recovery path when
the primary file is unreadable or fails its integrity check.

Integrity:
    - structural: the credential blob carries every SESSION_REQUIRED_FIELDS key
    - checksum: SHA-256 over the credential blob serialized with sorted keys

Failure policy:
    Persistence failures are logged and reported through return values
    (False / None). Nothing here raises to callers.
"""

import asyncio
import hashlib
import shutil
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

import orjson

from courier.core.config.constants import SESSION_BACKUP_SUFFIX, SESSION_FILE_NAME, Stage
from courier.core.config.settings import SessionSettings, get_settings
from courier.core.exceptions import SessionIntegrityError
from courier.core.logging import get_logger
from courier.delivery.persistence import atomic_write_bytes

logger = get_logger(__name__)


def credentials_checksum(credentials: dict[str, Any]) -> str:
    return hashlib.sha256(orjson.dumps(credentials, option=orjson.OPT_SORT_KEYS)).hexdigest()


@dataclass
class SessionRecord:
    """Opaque credential blob plus integrity metadata."""

    credentials: dict[str, Any]
    created_at: str = field(default_factory=lambda: datetime.utcnow().isoformat() + "Z")
    checksum: str = ""

    def __post_init__(self):
        if not self.checksum:
            self.checksum = credentials_checksum(self.credentials)

    def to_bytes(self) -> bytes:
        return orjson.dumps({
            "credentials": self.credentials,
            "created_at": self.created_at,
            "checksum": self.checksum,
        })

    @property
    def size_bytes(self) -> int:
        return len(self.to_bytes())

    @classmethod
    def from_bytes(cls, raw: bytes, required_fields: list[str]) -> "SessionRecord":
        """
        Decode and verify a session file.

        Raises:
            SessionIntegrityError: unreadable, missing fields, or checksum mismatch
        """
        try:
            data = orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            raise SessionIntegrityError.from_exception(e, message="Session file is not valid JSON")

        credentials = data.get("credentials") if isinstance(data, dict) else None
        if not isinstance(credentials, dict):
            raise SessionIntegrityError("Session file has no credential blob")

        missing = [name for name in required_fields if not credentials.get(name)]
        if missing:
            raise SessionIntegrityError(
                "Session credentials missing required fields", details={"missing": missing}
            )

        expected = credentials_checksum(credentials)
        if data.get("checksum") != expected:
            raise SessionIntegrityError("Session checksum mismatch")

        return cls(
            credentials=credentials,
            created_at=data.get("created_at") or datetime.utcnow().isoformat() + "Z",
            checksum=expected,
        )


class SessionStore:
    """
    Durable storage of session state with backup and restore.

    Usage:
        store = SessionStore()
        record = await store.load()
        await store.save(SessionRecord(credentials=creds))
    """

    def __init__(self, settings: SessionSettings | None = None):
        self._settings = settings or get_settings().session
        self.session_dir = Path(self._settings.SESSION_PATH)
        self.backup_dir = Path(f"{self._settings.SESSION_PATH.rstrip('/')}{SESSION_BACKUP_SUFFIX}")
        self._timeout = self._settings.PERSISTENCE_TIMEOUT_SECONDS
        self._required = list(self._settings.SESSION_REQUIRED_FIELDS)

    @property
    def session_file(self) -> Path:
        return self.session_dir / SESSION_FILE_NAME

    @property
    def backup_file(self) -> Path:
        return self.backup_dir / SESSION_FILE_NAME

    async def _io(self, func, *args):
        return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=self._timeout)

    async def _read_record(self, path: Path) -> SessionRecord:
        raw = await self._io(path.read_bytes)
        return SessionRecord.from_bytes(raw, self._required)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def save(self, record: SessionRecord) -> bool:
        try:
            await self._io(atomic_write_bytes, self.session_file, record.to_bytes())
        except (OSError, asyncio.TimeoutError) as e:
            logger.error(
                "Failed to save session",
                error=str(e),
                error_type=type(e).__name__,
                stage=Stage.SESSION,
            )
            return False
        logger.debug("Session saved", size_bytes=record.size_bytes, stage=Stage.SESSION)
        return True

    async def load(self) -> SessionRecord | None:
        """
        Load the primary session.

        A missing primary returns None without consulting the backup. An
        invalid primary is restored from the backup once.
        """
        if not self.session_file.exists():
            logger.info("No session found", stage=Stage.SESSION)
            return None

        try:
            return await self._read_record(self.session_file)
        except SessionIntegrityError as e:
            logger.warning("Session invalid, trying backup", error=e.message, stage=Stage.SESSION)
        except (OSError, asyncio.TimeoutError) as e:
            logger.warning(
                "Session unreadable, trying backup",
                error=str(e),
                error_type=type(e).__name__,
                stage=Stage.SESSION,
            )
        return await self.restore_from_backup()

    async def validate(self) -> bool:
        try:
            await self._read_record(self.session_file)
        except (SessionIntegrityError, OSError, asyncio.TimeoutError):
            return False
        return True

    async def backup(self) -> bool:
        """Copy the primary to the backup directory; only a valid primary is copied."""
        if not await self.validate():
            logger.debug("Skipping session backup, primary invalid or missing", stage=Stage.SESSION)
            return False
        try:
            raw = await self._io(self.session_file.read_bytes)
            await self._io(atomic_write_bytes, self.backup_file, raw)
        except (OSError, asyncio.TimeoutError) as e:
            logger.error(
                "Session backup failed",
                error=str(e),
                error_type=type(e).__name__,
                stage=Stage.SESSION,
            )
            return False
        logger.info("Session backed up", path=str(self.backup_dir), stage=Stage.SESSION)
        return True

    async def restore_from_backup(self) -> SessionRecord | None:
        if not self.backup_file.exists():
            logger.warning("No session backup available", stage=Stage.SESSION)
            return None
        try:
            record = await self._read_record(self.backup_file)
            await self._io(atomic_write_bytes, self.session_file, record.to_bytes())
        except SessionIntegrityError as e:
            logger.error("Session backup invalid", error=e.message, stage=Stage.SESSION)
            return None
        except (OSError, asyncio.TimeoutError) as e:
            logger.error(
                "Session restore failed",
                error=str(e),
                error_type=type(e).__name__,
                stage=Stage.SESSION,
            )
            return None
        logger.info("Session restored from backup", stage=Stage.SESSION)
        return record

    async def clear(self) -> None:
        """Back up, then delete the primary session directory."""
        await self.backup()
        try:
            await self._io(shutil.rmtree, self.session_dir, True)
        except asyncio.TimeoutError:
            logger.error("Session clear timed out", stage=Stage.SESSION)
            return
        logger.info("Session cleared", stage=Stage.SESSION)

    async def info(self) -> dict[str, Any]:
        """
        Describe the primary session file.

        created_at comes from the stored record when it validates, otherwise
        from the file's modification time.
        """
        info: dict[str, Any] = {
            "exists": self.session_file.exists(),
            "created_at": None,
            "size_bytes": 0,
            "backup_exists": self.backup_file.exists(),
        }
        if info["exists"]:
            try:
                stat = await self._io(self.session_file.stat)
                info["size_bytes"] = stat.st_size
                info["created_at"] = datetime.utcfromtimestamp(stat.st_mtime).isoformat() + "Z"
            except (OSError, asyncio.TimeoutError):
                return info
            try:
                record = await self._read_record(self.session_file)
            except (SessionIntegrityError, OSError, asyncio.TimeoutError):
                return info
            info["created_at"] = record.created_at
        return info
