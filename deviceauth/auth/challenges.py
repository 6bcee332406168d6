"""Single-use, time-boxed authentication challenges."""

from __future__ import annotations

import secrets
import time
from typing import Callable

from deviceauth.auth.models import Challenge
from deviceauth.core.database import Database

CHALLENGE_BYTES = 32


class ChallengeStore:
    """SQLite-backed nonce store.

    A device hint owns at most one live challenge: issuing again for the same
    hint replaces the previous value. Consumption is a single conditional
    DELETE, so two concurrent consumers of one challenge cannot both win.
    """

    def __init__(
        self,
        database: Database,
        *,
        ttl_seconds: int = 300,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._db = database
        self._ttl_seconds = max(1, int(ttl_seconds))
        self._clock = clock

    def issue(self, device_id_hint: str | None = None) -> Challenge:
        """Generate and persist a new challenge."""
        now = int(self._clock())
        hint = (device_id_hint or "").strip() or None
        challenge = Challenge(
            challenge=secrets.token_hex(CHALLENGE_BYTES),
            device_id=hint,
            created_at=now,
            expires_at=now + self._ttl_seconds,
        )
        with self._db.transaction() as cursor:
            self._purge_expired(cursor, now)
            cursor.execute(
                """
                INSERT INTO auth_challenges(challenge, device_id, created_at, expires_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(device_id) DO UPDATE SET
                  challenge = excluded.challenge,
                  created_at = excluded.created_at,
                  expires_at = excluded.expires_at
                """,
                (
                    challenge.challenge,
                    challenge.device_id,
                    challenge.created_at,
                    challenge.expires_at,
                ),
            )
        return challenge

    def get_active(self, challenge: str) -> Challenge | None:
        """Return the challenge when it exists and has not expired."""
        now = int(self._clock())
        with self._db.transaction() as cursor:
            row = cursor.execute(
                """
                SELECT challenge, device_id, created_at, expires_at
                FROM auth_challenges
                WHERE challenge = ? AND expires_at > ?
                """,
                (challenge, now),
            ).fetchone()
        if row is None:
            return None
        return Challenge(
            challenge=str(row["challenge"]),
            device_id=row["device_id"],
            created_at=int(row["created_at"]),
            expires_at=int(row["expires_at"]),
        )

    def consume(self, challenge: str) -> bool:
        """Atomically delete a live challenge; ``False`` means not found or expired."""
        now = int(self._clock())
        with self._db.transaction() as cursor:
            cursor.execute(
                "DELETE FROM auth_challenges WHERE challenge = ? AND expires_at > ?",
                (challenge, now),
            )
            return cursor.rowcount == 1

    def purge_expired(self) -> int:
        """Delete expired challenges and return how many were removed."""
        now = int(self._clock())
        with self._db.transaction() as cursor:
            return self._purge_expired(cursor, now)

    @staticmethod
    def _purge_expired(cursor, now: int) -> int:
        cursor.execute("DELETE FROM auth_challenges WHERE expires_at <= ?", (now,))
        return cursor.rowcount
