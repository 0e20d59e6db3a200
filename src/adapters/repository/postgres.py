"""
PostgreSQL repository adapters - Implement the domain repository protocols.

This module provides the PostgreSQL implementation of the domain's
repository ports using psycopg3 with raw SQL.

Concurrency Design:
-------------------
Each port method is a single SQL statement, so every mutation the domain
relies on being atomic is atomic in the database:

1. **Counters**: rate-limit counts and OTP attempts are incremented with
   ``SET n = n + 1`` (or ``INSERT ... ON CONFLICT DO UPDATE``), never by
   reading the value in Python and writing it back.

2. **One-time consumption**: OTPs and pay codes are consumed with
   ``UPDATE ... WHERE used = FALSE``. ``rowcount`` tells the caller whether
   it won; a concurrent loser sees 0 rows.

3. **Overwrites**: OTP issuance and rate-limit window starts are upserts,
   the last writer wins.
"""

import logging
from datetime import datetime
from pathlib import Path

from psycopg_pool import ConnectionPool

from src.adapters.repository.repositories import Repositories
from src.domain.models import (
    InternalRole,
    InternalUserRecord,
    OTPAttemptRecord,
    OTPRecord,
    PayCodeRecord,
    RateLimitRecord,
    UserRecord,
    UserStatus,
)

logger = logging.getLogger(__name__)


class PostgresOTPRepository:
    """
    Implements OTPRepository protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    All SQL uses parameterized queries for security.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        """
        Initialize repository with connection pool.

        Args:
            pool: psycopg3 ConnectionPool for database connections
        """
        self._pool = pool

    def save(self, record: OTPRecord) -> None:
        sql = """
            INSERT INTO otps (email, product_id, code, created_at, expires_at, used)
            VALUES (%s, %s, %s, %s, %s, %s)
            ON CONFLICT (email, product_id) DO UPDATE
            SET code = EXCLUDED.code,
                created_at = EXCLUDED.created_at,
                expires_at = EXCLUDED.expires_at,
                used = EXCLUDED.used
        """
        params = (
            record.email,
            record.product_id,
            record.code,
            record.created_at,
            record.expires_at,
            record.used,
        )
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, params)
            conn.commit()

    def get(self, email: str, product_id: str) -> OTPRecord | None:
        sql = """
            SELECT email, product_id, code, created_at, expires_at, used
            FROM otps
            WHERE email = %s AND product_id = %s
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (email, product_id))
            row = cursor.fetchone()

        if row is None:
            return None
        return OTPRecord(
            email=row[0],
            product_id=row[1],
            code=row[2],
            created_at=row[3],
            expires_at=row[4],
            used=row[5],
        )

    def mark_used(self, email: str, product_id: str, code: str) -> bool:
        """
        Consume the OTP if it is still unused and still carries code.

        Returns:
            True if this call flipped used, False if another caller did first
            or the code was overwritten by a newer issue
        """
        sql = """
            UPDATE otps
            SET used = TRUE
            WHERE email = %s AND product_id = %s AND code = %s AND used = FALSE
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (email, product_id, code))
            conn.commit()
            return cursor.rowcount == 1


class PostgresOTPAttemptRepository:
    """Implements OTPAttemptRepository protocol via psycopg3."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def get(self, email: str, product_id: str) -> OTPAttemptRecord | None:
        sql = """
            SELECT email, product_id, attempts, last_attempt_at, locked_until, ip_address
            FROM otp_attempts
            WHERE email = %s AND product_id = %s
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (email, product_id))
            row = cursor.fetchone()

        return _attempt_from_row(row) if row is not None else None

    def record_failure(
        self,
        email: str,
        product_id: str,
        now: datetime,
        max_attempts: int,
        lockout_until: datetime,
        ip_address: str | None = None,
    ) -> OTPAttemptRecord:
        """
        Atomically increment the failure counter via upsert.

        The lock timestamp is computed in the same statement from the
        incremented value, so concurrent failures cannot skip the threshold.
        """
        sql = """
            INSERT INTO otp_attempts
                (email, product_id, attempts, last_attempt_at, locked_until, ip_address)
            VALUES (
                %(email)s,
                %(product_id)s,
                1,
                %(now)s,
                CASE WHEN 1 >= %(max_attempts)s::int THEN %(lockout_until)s::timestamptz END,
                %(ip_address)s
            )
            ON CONFLICT (email, product_id) DO UPDATE
            SET attempts = otp_attempts.attempts + 1,
                last_attempt_at = EXCLUDED.last_attempt_at,
                ip_address = COALESCE(EXCLUDED.ip_address, otp_attempts.ip_address),
                locked_until = CASE
                    WHEN otp_attempts.attempts + 1 >= %(max_attempts)s::int
                        THEN %(lockout_until)s::timestamptz
                    ELSE otp_attempts.locked_until
                END
            RETURNING email, product_id, attempts, last_attempt_at, locked_until, ip_address
        """
        params = {
            "email": email,
            "product_id": product_id,
            "now": now,
            "max_attempts": max_attempts,
            "lockout_until": lockout_until,
            "ip_address": ip_address,
        }
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, params)
            row = cursor.fetchone()
            conn.commit()

        return _attempt_from_row(row)

    def clear_lock(self, email: str, product_id: str) -> None:
        sql = """
            UPDATE otp_attempts
            SET attempts = 0, locked_until = NULL
            WHERE email = %s AND product_id = %s
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (email, product_id))
            conn.commit()

    def reset(self, email: str, product_id: str) -> None:
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(
                "DELETE FROM otp_attempts WHERE email = %s AND product_id = %s",
                (email, product_id),
            )
            conn.commit()


class PostgresRateLimitRepository:
    """Implements RateLimitRepository protocol via psycopg3."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def get(self, key: str) -> RateLimitRecord | None:
        sql = """
            SELECT key, count, window_start, blocked_until
            FROM rate_limits
            WHERE key = %s
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (key,))
            row = cursor.fetchone()

        if row is None:
            return None
        return RateLimitRecord(key=row[0], count=row[1], window_start=row[2], blocked_until=row[3])

    def start_window(self, key: str, now: datetime) -> None:
        sql = """
            INSERT INTO rate_limits (key, count, window_start, blocked_until)
            VALUES (%s, 1, %s, NULL)
            ON CONFLICT (key) DO UPDATE
            SET count = 1, window_start = EXCLUDED.window_start, blocked_until = NULL
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (key, now))
            conn.commit()

    def increment(self, key: str) -> None:
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute("UPDATE rate_limits SET count = count + 1 WHERE key = %s", (key,))
            conn.commit()

    def block(self, key: str, until: datetime) -> None:
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(
                "UPDATE rate_limits SET blocked_until = %s WHERE key = %s", (until, key)
            )
            conn.commit()


class PostgresUserRepository:
    """Implements UserRepository protocol via psycopg3."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def get(self, email: str) -> UserRecord | None:
        sql = """
            SELECT email, code, products, status, created_at, updated_at
            FROM users
            WHERE email = %s
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (email,))
            row = cursor.fetchone()

        if row is None:
            return None
        return UserRecord(
            email=row[0],
            code=row[1],
            products=list(row[2] or []),
            status=UserStatus(row[3]),
            created_at=row[4],
            updated_at=row[5],
        )

    def create(self, record: UserRecord) -> None:
        sql = """
            INSERT INTO users (email, code, products, status, created_at, updated_at)
            VALUES (%s, %s, %s, %s, %s, %s)
            ON CONFLICT (email) DO UPDATE
            SET code = EXCLUDED.code,
                products = EXCLUDED.products,
                status = EXCLUDED.status,
                updated_at = EXCLUDED.updated_at
        """
        params = (
            record.email,
            record.code,
            list(record.products),
            record.status.value,
            record.created_at,
            record.updated_at,
        )
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, params)
            conn.commit()

    def add_product(self, email: str, product_id: str, now: datetime) -> None:
        sql = """
            UPDATE users
            SET products = array_append(products, %(product_id)s::text),
                updated_at = %(now)s
            WHERE email = %(email)s AND NOT (%(product_id)s::text = ANY(products))
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, {"email": email, "product_id": product_id, "now": now})
            conn.commit()


class PostgresPayCodeRepository:
    """Implements PayCodeRepository protocol via psycopg3."""

    _COLUMNS = "email, product_id, amount, metadata, ref_code, used, created_at, updated_at"

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def create(self, pay_code_id: str, record: PayCodeRecord) -> None:
        sql = f"""
            INSERT INTO pay_codes (id, {self._COLUMNS})
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
        """
        params = (
            pay_code_id,
            record.email,
            record.product_id,
            record.amount,
            record.metadata,
            record.ref_code,
            record.used,
            record.created_at,
            record.updated_at,
        )
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, params)
            conn.commit()

    def get(self, pay_code_id: str) -> PayCodeRecord | None:
        sql = f"SELECT {self._COLUMNS} FROM pay_codes WHERE id = %s"
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (pay_code_id,))
            row = cursor.fetchone()

        return _pay_code_from_row(row) if row is not None else None

    def mark_used(self, pay_code_id: str, now: datetime) -> bool:
        sql = """
            UPDATE pay_codes
            SET used = TRUE, updated_at = %s
            WHERE id = %s AND used = FALSE
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (now, pay_code_id))
            conn.commit()
            return cursor.rowcount == 1

    def list_created_between(
        self, start: datetime, end: datetime, ref_code: str | None = None
    ) -> list[PayCodeRecord]:
        if ref_code is None:
            sql = f"""
                SELECT {self._COLUMNS} FROM pay_codes
                WHERE created_at >= %s AND created_at < %s
                ORDER BY created_at
            """
            params: tuple = (start, end)
        else:
            sql = f"""
                SELECT {self._COLUMNS} FROM pay_codes
                WHERE ref_code = %s AND created_at >= %s AND created_at < %s
                ORDER BY created_at
            """
            params = (ref_code, start, end)

        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, params)
            rows = cursor.fetchall()

        return [_pay_code_from_row(row) for row in rows]


class PostgresInternalUserRepository:
    """Implements InternalUserRepository protocol via psycopg3."""

    _COLUMNS = "email, password_hash, ref_code, role, ref_percent, created_at, updated_at"

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def get(self, email: str) -> InternalUserRecord | None:
        sql = f"SELECT {self._COLUMNS} FROM internal_users WHERE email = %s"
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (email,))
            row = cursor.fetchone()

        return _internal_user_from_row(row) if row is not None else None

    def get_by_ref_code(self, ref_code: str) -> InternalUserRecord | None:
        sql = f"SELECT {self._COLUMNS} FROM internal_users WHERE ref_code = %s LIMIT 1"
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (ref_code,))
            row = cursor.fetchone()

        return _internal_user_from_row(row) if row is not None else None

    def create(self, record: InternalUserRecord) -> bool:
        """
        Insert the user; unique constraints on email and ref_code decide races.

        Returns:
            True if inserted, False if either key was already taken
        """
        sql = f"""
            INSERT INTO internal_users ({self._COLUMNS})
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT DO NOTHING
        """
        params = (
            record.email,
            record.password_hash,
            record.ref_code,
            record.role.value,
            record.ref_percent,
            record.created_at,
            record.updated_at,
        )
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, params)
            conn.commit()
            return cursor.rowcount == 1


def _attempt_from_row(row: tuple) -> OTPAttemptRecord:
    return OTPAttemptRecord(
        email=row[0],
        product_id=row[1],
        attempts=row[2],
        last_attempt_at=row[3],
        locked_until=row[4],
        ip_address=row[5],
    )


def _pay_code_from_row(row: tuple) -> PayCodeRecord:
    return PayCodeRecord(
        email=row[0],
        product_id=row[1],
        amount=row[2],
        metadata=row[3],
        ref_code=row[4],
        used=row[5],
        created_at=row[6],
        updated_at=row[7],
    )


def _internal_user_from_row(row: tuple) -> InternalUserRecord:
    return InternalUserRecord(
        email=row[0],
        password_hash=row[1],
        ref_code=row[2],
        role=InternalRole(row[3]),
        ref_percent=row[4],
        created_at=row[5],
        updated_at=row[6],
    )


def build_postgres_repositories(pool: ConnectionPool) -> Repositories:
    """Create the full set of repositories sharing one connection pool."""
    return Repositories(
        otps=PostgresOTPRepository(pool),
        otp_attempts=PostgresOTPAttemptRepository(pool),
        rate_limits=PostgresRateLimitRepository(pool),
        users=PostgresUserRepository(pool),
        pay_codes=PostgresPayCodeRepository(pool),
        internal_users=PostgresInternalUserRepository(pool),
    )


def run_migrations(pool: ConnectionPool) -> None:
    """
    Execute all SQL migration files from the migrations directory.

    Migrations are executed in sorted order (alphabetically by filename).
    Each migration should be idempotent (use IF NOT EXISTS, etc.).

    Args:
        pool: psycopg3 ConnectionPool instance
    """
    # Structure: src/adapters/repository/postgres.py -> migrations/
    migrations_dir = Path(__file__).parent.parent.parent.parent / "migrations"

    if not migrations_dir.exists():
        logger.warning(f"Migrations directory not found: {migrations_dir}")
        return

    sql_files = sorted(migrations_dir.glob("*.sql"))

    if not sql_files:
        logger.info("No migration files found")
        return

    logger.info(f"Running {len(sql_files)} migration(s)")

    for sql_file in sql_files:
        logger.info(f"Executing migration: {sql_file.name}")
        try:
            sql_content = sql_file.read_text()

            with pool.connection() as conn:
                conn.execute(sql_content)

            logger.info(f"Migration complete: {sql_file.name}")
        except Exception as e:
            logger.error(f"Migration failed: {sql_file.name} - {e}")
            raise RuntimeError(f"Database migration failed: {sql_file.name}") from e
