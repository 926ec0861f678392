"""Database repository for user and expert accounts."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from .domain.account import Account, AccountKind, ExpertAccount, StandardAccount

_COMMON_COLUMNS = (
    "id, email, first_name, last_name, phone, is_active, is_email_verified, "
    "profile_image, last_login"
)
_EXPERT_COLUMNS = (
    _COMMON_COLUMNS
    + ", specialization, experience, rating_average, rating_count, verification_status, "
    "login_attempts, lock_until"
)

_TABLES = {AccountKind.EXPERT: "experts", AccountKind.STANDARD: "users"}


class AccountRepository:
    """Postgres-backed persistence for both account tables plus expert lockout state.

    The password hash is only selected when a caller explicitly asks for it.
    """

    def __init__(
        self,
        pool: ConnectionPool,
        *,
        max_login_attempts: int = 5,
        lockout_seconds: int = 7200,
    ) -> None:
        self._pool = pool
        self._max_login_attempts = max_login_attempts
        self._lockout = timedelta(seconds=lockout_seconds)

    def find_expert_by_email(
        self, email: str, *, include_password: bool = False
    ) -> ExpertAccount | None:
        """Return the expert registered under ``email`` or ``None``."""
        row = self._fetch_by_email(AccountKind.EXPERT, email, include_password)
        return self._map_expert(row) if row else None

    def find_user_by_email(
        self, email: str, *, include_password: bool = False
    ) -> StandardAccount | None:
        """Return the standard user registered under ``email`` or ``None``."""
        row = self._fetch_by_email(AccountKind.STANDARD, email, include_password)
        return self._map_user(row) if row else None

    def get_account(self, account_id: str, kind: AccountKind) -> Account | None:
        """Fetch an account of the given kind by identifier, without its password hash."""
        columns = _EXPERT_COLUMNS if kind is AccountKind.EXPERT else _COMMON_COLUMNS
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {columns} FROM {_TABLES[kind]} WHERE id = %s",
                    (account_id,),
                )
                row = cur.fetchone()
        if not row:
            return None
        return self._map_expert(row) if kind is AccountKind.EXPERT else self._map_user(row)

    def record_last_login(self, account_id: str, kind: AccountKind, when: datetime) -> None:
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"UPDATE {_TABLES[kind]} SET last_login = %s WHERE id = %s",
                    (when, account_id),
                )
                conn.commit()

    def increment_login_attempts(self, expert_id: str) -> ExpertAccount | None:
        """Count a failed login for an expert, locking the account at the threshold.

        A lock that has already expired is cleared and the count restarts at one.
        The whole transition is a single ``UPDATE`` so concurrent failures are
        never lost.
        """
        now = datetime.now(timezone.utc)
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    UPDATE experts
                    SET login_attempts = CASE
                            WHEN lock_until IS NOT NULL AND lock_until <= %(now)s THEN 1
                            ELSE login_attempts + 1
                        END,
                        lock_until = CASE
                            WHEN lock_until IS NOT NULL AND lock_until <= %(now)s THEN NULL
                            WHEN lock_until IS NULL AND login_attempts + 1 >= %(max_attempts)s
                                THEN %(locked_until)s
                            ELSE lock_until
                        END
                    WHERE id = %(expert_id)s
                    RETURNING {_EXPERT_COLUMNS}
                    """,
                    {
                        "now": now,
                        "max_attempts": self._max_login_attempts,
                        "locked_until": now + self._lockout,
                        "expert_id": expert_id,
                    },
                )
                row = cur.fetchone()
                conn.commit()
        return self._map_expert(row) if row else None

    def reset_login_attempts(self, expert_id: str) -> None:
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE experts
                    SET login_attempts = 0, lock_until = NULL
                    WHERE id = %s AND (login_attempts <> 0 OR lock_until IS NOT NULL)
                    """,
                    (expert_id,),
                )
                conn.commit()

    def _fetch_by_email(
        self, kind: AccountKind, email: str, include_password: bool
    ) -> dict[str, Any] | None:
        columns = _EXPERT_COLUMNS if kind is AccountKind.EXPERT else _COMMON_COLUMNS
        if include_password:
            columns += ", password_hash"
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {columns} FROM {_TABLES[kind]} WHERE lower(email) = lower(%s)",
                    (email,),
                )
                return cur.fetchone()

    def _map_user(self, row: dict[str, Any]) -> StandardAccount:
        """Convert a ``users`` row into the ``StandardAccount`` dataclass."""
        return StandardAccount(
            account_id=str(row["id"]),
            email=row["email"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            phone=row["phone"],
            is_active=row["is_active"],
            is_email_verified=row["is_email_verified"],
            profile_image=row["profile_image"],
            last_login=row["last_login"],
            password_hash=row.get("password_hash"),
        )

    def _map_expert(self, row: dict[str, Any]) -> ExpertAccount:
        """Convert an ``experts`` row into the ``ExpertAccount`` dataclass."""
        return ExpertAccount(
            account_id=str(row["id"]),
            email=row["email"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            phone=row["phone"],
            is_active=row["is_active"],
            is_email_verified=row["is_email_verified"],
            profile_image=row["profile_image"],
            last_login=row["last_login"],
            password_hash=row.get("password_hash"),
            specialization=row["specialization"],
            experience=row["experience"],
            rating_average=float(row["rating_average"] or 0),
            rating_count=row["rating_count"] or 0,
            verification_status=row["verification_status"],
            login_attempts=row["login_attempts"] or 0,
            lock_until=row["lock_until"],
        )
