"""Process-wide dependencies built once at startup and passed explicitly."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from deviceauth.audit.cipher import FieldCipher
from deviceauth.core.config import AppConfig
from deviceauth.core.database import Database


@dataclass(frozen=True)
class AppContext:
    """Validated configuration, store handle and audit key material."""

    config: AppConfig
    database: Database
    cipher: FieldCipher

    @staticmethod
    def build(config: AppConfig, *, app_root: Path) -> "AppContext":
        """Validate config and open the store; raises ``ConfigError`` early."""
        config.validate()
        database_path = Path(config.store.sqlite_path)
        if not database_path.is_absolute():
            database_path = (app_root / database_path).resolve()
        return AppContext(
            config=config,
            database=Database(database_path),
            cipher=FieldCipher.from_hex(config.audit.encryption_key),
        )

    def close(self) -> None:
        self.database.close()
