import asyncio
import logging
import re
from contextlib import asynccontextmanager
from dataclasses import dataclass, fields
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import aiosqlite

from .exceptions import DuplicateFieldError, StorageError, ValidationError
from .validators import shorten_address

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("user_id", "address", "encrypted_private_key")
UNIQUE_FIELDS = ("user_id", "address", "encrypted_private_key")

_CONSTRAINT_RE = re.compile(r"(UNIQUE|NOT NULL) constraint failed: wallets\.(\w+)")


@dataclass
class WalletRecord:
    user_id: Optional[int] = None
    address: Optional[str] = None
    encrypted_private_key: Optional[str] = None
    encrypted_mnemonic: Optional[str] = None
    created_at: Optional[datetime] = None
    id: Optional[int] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "WalletRecord":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    @classmethod
    def from_row(cls, row: aiosqlite.Row) -> "WalletRecord":
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            address=row["address"],
            encrypted_private_key=row["encrypted_private_key"],
            encrypted_mnemonic=row["encrypted_mnemonic"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )


class WalletStore:
    def __init__(
        self,
        db_path: Union[str, Path] = "data/soursop.db",
        query_timeout: float = 30.0,
        enable_wal: bool = True,
    ):
        self.db_path = Path(db_path)
        self.query_timeout = query_timeout
        self.enable_wal = enable_wal
        self._conn: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()
        self._initialized = False

    async def initialize(self) -> None:
        if self._initialized:
            return

        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        async with self._get_connection() as conn:
            if self.enable_wal:
                await conn.execute("PRAGMA journal_mode=WAL")
                await conn.execute("PRAGMA synchronous=NORMAL")

            await conn.execute("PRAGMA busy_timeout=30000")

            await self._create_tables(conn)
            await conn.commit()

        self._initialized = True
        logger.info(f"Wallet store initialized: {self.db_path}")

    async def _create_tables(self, conn: aiosqlite.Connection) -> None:
        await conn.executescript("""
            CREATE TABLE IF NOT EXISTS wallets (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL UNIQUE,
                address TEXT NOT NULL UNIQUE,
                encrypted_private_key TEXT NOT NULL UNIQUE,
                encrypted_mnemonic TEXT,
                created_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_wallets_user ON wallets(user_id);
        """)

    @asynccontextmanager
    async def _get_connection(self):
        try:
            async with asyncio.timeout(self.query_timeout):
                async with self._lock:
                    if self._conn is None:
                        self._conn = await aiosqlite.connect(self.db_path, timeout=self.query_timeout)
                        self._conn.row_factory = aiosqlite.Row
                    yield self._conn
        except TimeoutError as exc:
            raise StorageError(
                f"Query timeout after {self.query_timeout}s",
                is_recoverable=True,
            ) from exc

    @staticmethod
    def _validate(record: WalletRecord) -> None:
        for name in REQUIRED_FIELDS:
            value = getattr(record, name)
            if value is None or value == "":
                raise ValidationError(
                    f"Wallet validation failed: {name} is required",
                    field_name=name,
                )
        if isinstance(record.user_id, bool) or not isinstance(record.user_id, int):
            raise ValidationError(
                "Wallet validation failed: user_id must be an integer",
                field_name="user_id",
            )

    async def create_and_save(self, record: Union[WalletRecord, Mapping[str, Any]]) -> WalletRecord:
        """
        Insert a wallet record in a single constrained write.

        Raises:
            ValidationError: a required field is missing
            DuplicateFieldError: user_id, address or encrypted_private_key already stored
        """
        if not isinstance(record, WalletRecord):
            record = WalletRecord.from_mapping(record)

        self._validate(record)

        if not self._initialized:
            await self.initialize()

        created_at = datetime.now(timezone.utc)

        async with self._get_connection() as conn:
            try:
                cursor = await conn.execute("""
                    INSERT INTO wallets (
                        user_id, address, encrypted_private_key,
                        encrypted_mnemonic, created_at
                    ) VALUES (?, ?, ?, ?, ?)
                """, (
                    record.user_id, record.address, record.encrypted_private_key,
                    record.encrypted_mnemonic, created_at.isoformat(),
                ))
                await conn.commit()
            except aiosqlite.IntegrityError as exc:
                await conn.rollback()
                raise self._translate_integrity_error(exc) from exc

        stored = WalletRecord(
            id=cursor.lastrowid,
            user_id=record.user_id,
            address=record.address,
            encrypted_private_key=record.encrypted_private_key,
            encrypted_mnemonic=record.encrypted_mnemonic,
            created_at=created_at,
        )
        logger.info(f"Wallet saved: user {record.user_id} -> {shorten_address(record.address)}")
        return stored

    @staticmethod
    def _translate_integrity_error(exc: aiosqlite.IntegrityError) -> StorageError:
        match = _CONSTRAINT_RE.search(str(exc))
        if match is None:
            return StorageError(f"Integrity error: {exc}")

        constraint, column = match.groups()
        if constraint == "UNIQUE":
            return DuplicateFieldError(f"Duplicate value for field: {column}", field_name=column)
        return ValidationError(f"Wallet validation failed: {column} is required", field_name=column)

    async def find_by_user_id(self, user_id: int) -> Optional[WalletRecord]:
        if not self._initialized:
            await self.initialize()

        async with self._get_connection() as conn:
            cursor = await conn.execute(
                "SELECT * FROM wallets WHERE user_id = ?", (user_id,)
            )
            row = await cursor.fetchone()

        return WalletRecord.from_row(row) if row else None

    async def close(self) -> None:
        async with self._lock:
            if self._conn is not None:
                await self._conn.close()
                self._conn = None
        self._initialized = False
        logger.info("Wallet store closed")

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
