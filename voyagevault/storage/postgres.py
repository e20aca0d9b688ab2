from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Optional, Tuple

from psycopg import errors
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from voyagevault.logging import get_logger
from voyagevault.storage.errors import ConstraintViolation
from voyagevault.storage.models import Account, SignupMethod, VerificationCode

_SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        "firstName" TEXT NOT NULL,
        "lastName" TEXT NOT NULL,
        email TEXT NOT NULL UNIQUE,
        verified BOOLEAN NOT NULL DEFAULT FALSE,
        signup_method TEXT NOT NULL DEFAULT 'email',
        "profilePicture" TEXT,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS codes (
        email TEXT PRIMARY KEY,
        code TEXT NOT NULL,
        expires_at TIMESTAMPTZ NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    "CREATE INDEX IF NOT EXISTS users_unverified_created_idx ON users (created_at) WHERE verified = FALSE",
)


def _aware(value: Any) -> datetime:
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class PostgresStore:
    """Postgres-backed account and verification-code store.

    Every public method checks out one pooled connection for its duration and
    runs in a single transaction; the pool context returns the connection on
    every exit path.
    """

    def __init__(self, dsn: str, *, min_size: int = 1, max_size: int = 10) -> None:
        self.dsn = dsn
        self.logger = get_logger(__name__)
        self.pool = ConnectionPool(
            self.dsn,
            min_size=min_size,
            max_size=max_size,
            kwargs={"row_factory": dict_row, "autocommit": False},
            open=True,
        )
        self._ensure_schema()

    def _connect(self):
        return self.pool.connection()

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            for statement in _SCHEMA_STATEMENTS:
                conn.execute(statement)

    def close(self) -> None:
        self.pool.close()

    @staticmethod
    def _row_to_account(row: dict) -> Account:
        return Account(
            id=str(row["id"]),
            first_name=row["firstName"],
            last_name=row["lastName"],
            email=row["email"],
            verified=bool(row.get("verified", False)),
            signup_method=SignupMethod(row.get("signup_method") or SignupMethod.EMAIL),
            profile_picture_url=row.get("profilePicture"),
            created_at=_aware(row["created_at"]),
        )

    @staticmethod
    def _row_to_code(row: dict) -> VerificationCode:
        return VerificationCode(
            email=row["email"],
            code=row["code"],
            expires_at=_aware(row["expires_at"]),
            created_at=_aware(row["created_at"]),
        )

    # accounts
    def create_account(
        self,
        first_name: str,
        last_name: str,
        email: str,
        *,
        verified: bool = False,
        signup_method: SignupMethod = SignupMethod.EMAIL,
        profile_picture_url: Optional[str] = None,
    ) -> Account:
        account = Account.new(
            first_name,
            last_name,
            email,
            verified=verified,
            signup_method=signup_method,
            profile_picture_url=profile_picture_url,
        )
        try:
            with self._connect() as conn:
                row = conn.execute(
                    """
                    INSERT INTO users (id, "firstName", "lastName", email, verified, signup_method, "profilePicture", created_at)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                    RETURNING *
                    """,
                    (
                        account.id,
                        first_name,
                        last_name,
                        email,
                        verified,
                        SignupMethod(signup_method).value,
                        profile_picture_url,
                        account.created_at,
                    ),
                ).fetchone()
        except errors.UniqueViolation:
            raise ConstraintViolation("email already exists", {"field": "email"})
        return self._row_to_account(row)

    def get_account(self, account_id: str) -> Optional[Account]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE id = %s", (account_id,)
            ).fetchone()
        return self._row_to_account(row) if row else None

    def get_account_by_email(self, email: str) -> Optional[Account]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = %s", (email,)
            ).fetchone()
        return self._row_to_account(row) if row else None

    def mark_verified(self, account_id: str) -> Optional[Account]:
        with self._connect() as conn:
            row = conn.execute(
                "UPDATE users SET verified = TRUE WHERE id = %s RETURNING *",
                (account_id,),
            ).fetchone()
        return self._row_to_account(row) if row else None

    def link_google_account(
        self,
        email: str,
        first_name: str,
        last_name: str,
        profile_picture_url: Optional[str] = None,
    ) -> Tuple[Account, Optional[Account]]:
        candidate = Account.new(first_name, last_name, email)
        with self._connect() as conn:
            before = conn.execute(
                "SELECT * FROM users WHERE email = %s FOR UPDATE", (email,)
            ).fetchone()
            row = conn.execute(
                """
                INSERT INTO users (id, "firstName", "lastName", email, verified, signup_method, "profilePicture", created_at)
                VALUES (%s, %s, %s, %s, TRUE, %s, %s, %s)
                ON CONFLICT (email) DO UPDATE
                SET verified = TRUE,
                    signup_method = EXCLUDED.signup_method,
                    "profilePicture" = COALESCE(users."profilePicture", EXCLUDED."profilePicture")
                RETURNING *
                """,
                (
                    candidate.id,
                    first_name,
                    last_name,
                    email,
                    SignupMethod.GOOGLE.value,
                    profile_picture_url,
                    candidate.created_at,
                ),
            ).fetchone()
        previous = self._row_to_account(before) if before else None
        return self._row_to_account(row), previous

    # verification codes
    def upsert_code(
        self, email: str, code: str, expires_at: datetime
    ) -> VerificationCode:
        with self._connect() as conn:
            row = conn.execute(
                """
                INSERT INTO codes (email, code, expires_at, created_at)
                VALUES (%s, %s, %s, now())
                ON CONFLICT (email) DO UPDATE
                SET code = EXCLUDED.code,
                    expires_at = EXCLUDED.expires_at,
                    created_at = EXCLUDED.created_at
                RETURNING *
                """,
                (email, code, expires_at),
            ).fetchone()
        return self._row_to_code(row)

    def get_code(self, email: str) -> Optional[VerificationCode]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM codes WHERE email = %s", (email,)
            ).fetchone()
        return self._row_to_code(row) if row else None

    def consume_code(self, email: str, code: str, now: datetime) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                """
                DELETE FROM codes
                WHERE email = %s AND code = %s AND expires_at > %s
                RETURNING email
                """,
                (email, code, now),
            ).fetchone()
        return row is not None

    # maintenance
    def delete_stale_unverified(self, cutoff: datetime) -> List[str]:
        with self._connect() as conn:
            rows = conn.execute(
                "DELETE FROM users WHERE verified = FALSE AND created_at < %s RETURNING email",
                (cutoff,),
            ).fetchall()
            emails = [row["email"] for row in rows]
            if emails:
                conn.execute("DELETE FROM codes WHERE email = ANY(%s)", (emails,))
        return emails

    def verify_connection(self) -> None:
        with self._connect() as conn:
            conn.execute("SELECT 1").fetchone()
