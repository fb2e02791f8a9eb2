"""SQLite-backed persistence for AmoCRM token records."""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from amolink.models.token import TokenRecord

if TYPE_CHECKING:
    from amolink.services.token_cipher import TokenCipherService

_COLUMNS = "access_token, refresh_token, base_domain, expires_at, created_at, updated_at"


class SQLiteTokenStore:
    """One row per account domain; token columns are encrypted at rest."""

    def __init__(self, db_path: str, *, token_cipher: TokenCipherService) -> None:
        self._db_path = Path(db_path)
        self._cipher = token_cipher
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS amo_crm_tokens (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    access_token TEXT NOT NULL,
                    refresh_token TEXT NOT NULL,
                    base_domain TEXT UNIQUE,
                    expires_at TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )

    def _to_record(self, row: sqlite3.Row) -> TokenRecord:
        return TokenRecord(
            access_token=self._cipher.decrypt(row["access_token"]),
            refresh_token=self._cipher.decrypt(row["refresh_token"]),
            base_domain=row["base_domain"],
            expires_at=datetime.fromisoformat(row["expires_at"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def load_any(self) -> Optional[TokenRecord]:
        """Return the most recently written record, if any."""
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM amo_crm_tokens "
                "ORDER BY updated_at DESC, id DESC LIMIT 1"
            ).fetchone()
        if not row:
            return None
        return self._to_record(row)

    def get(self, base_domain: str) -> Optional[TokenRecord]:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM amo_crm_tokens WHERE base_domain = ?",
                (base_domain,),
            ).fetchone()
        if not row:
            return None
        return self._to_record(row)

    def upsert(
        self,
        base_domain: str,
        *,
        access_token: str,
        refresh_token: str,
        expires_at: datetime,
    ) -> TokenRecord:
        """Insert the record for ``base_domain`` or overwrite its tokens in place."""
        now = datetime.now(timezone.utc)
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        # Validate lengths before anything touches the database.
        record = TokenRecord(
            access_token=access_token,
            refresh_token=refresh_token,
            base_domain=base_domain,
            expires_at=expires_at,
            created_at=now,
            updated_at=now,
        )
        with self._connect() as conn:
            conn.execute(
                f"""
                INSERT INTO amo_crm_tokens ({_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(base_domain) DO UPDATE SET
                    access_token = excluded.access_token,
                    refresh_token = excluded.refresh_token,
                    expires_at = excluded.expires_at,
                    updated_at = excluded.updated_at
                """,
                (
                    self._cipher.encrypt(record.access_token),
                    self._cipher.encrypt(record.refresh_token),
                    base_domain,
                    record.expires_at.isoformat(),
                    now.isoformat(),
                    now.isoformat(),
                ),
            )
            row = conn.execute(
                "SELECT created_at FROM amo_crm_tokens WHERE base_domain = ?",
                (base_domain,),
            ).fetchone()
        return record.model_copy(
            update={"created_at": datetime.fromisoformat(row["created_at"])}
        )


__all__ = ["SQLiteTokenStore"]
