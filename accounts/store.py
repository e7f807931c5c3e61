"""
accounts/store.py -- SQLAlchemy Core persistence layer for accounts.

Pattern: Repository + Data Mapper. AccountStore is the repository;
_row_to_account is the mapper. The engine and routes never touch SQL.

Field addressing:
  Callers name fields the way the API does (camelCase: "emailVerificationToken").
  FIELD_COLUMNS is the one static table from those names to the users columns
  (snake_case). Any name outside it raises UnknownField before a statement is
  built, so a column identifier can never come from caller input.

Security:
  All values are bound parameters via the SQLAlchemy expression language.
  No f-strings in SQL, no dynamic column names outside FIELD_COLUMNS.

Connections:
  Every public method takes one pooled connection with `with engine.connect()`
  or `with engine.begin()`. The context manager returns it to the pool on
  every exit path, including when the statement raises. Relational errors are
  never caught here -- they propagate to the engine.

Layer rule: no imports from api/, auth/, or services/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Mapping

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, and_, create_engine, event, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from accounts.models import ROLE_USER, STATUS_PENDING, Account
from core.errors import ImmutableField, UnknownField, ValidationError

logger = logging.getLogger("waypoint.accounts.store")

_DEFAULT_DB_URL = "sqlite:///waypoint_identity.db"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text),  # NULL for identity-provider-only accounts
    Column("name", String(255)),
    Column("phone_number", String(50)),
    Column("address", Text),
    Column("avatar_url", Text),
    Column("role", String(20), nullable=False, server_default=ROLE_USER),
    Column("status", String(30), nullable=False, server_default=STATUS_PENDING),
    Column("email_verification_token", Text),
    Column("reset_password_token", Text),
    Column("refresh_token", Text),
    Column("google_id", String(255)),
    Column("created_at", String(32), nullable=False),
)

# ---------------------------------------------------------------------------
# Field-name translation
# ---------------------------------------------------------------------------

FIELD_COLUMNS: dict[str, str] = {
    "id": "id",
    "email": "email",
    "passwordHash": "password_hash",
    "name": "name",
    "phoneNumber": "phone_number",
    "address": "address",
    "avatarUrl": "avatar_url",
    "role": "role",
    "status": "status",
    "emailVerificationToken": "email_verification_token",
    "resetPasswordToken": "reset_password_token",
    "refreshToken": "refresh_token",
    "googleId": "google_id",
    "createdAt": "created_at",
}

COLUMN_FIELDS: dict[str, str] = {column: name for name, column in FIELD_COLUMNS.items()}

# Never writable through update(). role is fixed at creation.
_IMMUTABLE_FIELDS = frozenset({"id", "role", "createdAt"})
# Generated by the store on insert.
_GENERATED_FIELDS = frozenset({"id", "createdAt"})


def translate_field(name: str) -> str:
    """Return the column name for a logical field name. Raises UnknownField."""
    try:
        return FIELD_COLUMNS[name]
    except KeyError:
        raise UnknownField(f"Unknown account field: {name!r}") from None


def _to_columns(fields: Mapping[str, Any]) -> dict[str, Any]:
    return {translate_field(name): value for name, value in fields.items()}


def _where(filters: Mapping[str, Any]):
    """Build an AND of column == :param clauses from validated field names."""
    clauses = [users.c[translate_field(name)] == value for name, value in filters.items()]
    return and_(*clauses) if clauses else None


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block during writes.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account rows in the users relation.

    Usage:
        store = AccountStore("sqlite:///:memory:")
        account = store.insert({"email": "a@x.com", "passwordHash": hash_password("pw123456")})
        store.update(account.id, {"status": "active"})
        rows, total = store.find_many({"role": "seller"}, limit=10, offset=0)
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        kwargs: dict = {}
        if db_url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if db_url in ("sqlite://", "sqlite:///:memory:"):
                # One shared connection, otherwise each pooled connection
                # would see its own empty in-memory database.
                kwargs["poolclass"] = StaticPool
        self.engine: Engine = create_engine(db_url, **kwargs)
        if db_url.startswith("sqlite") and "memory" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_by_field(self, field_name: str, value: Any) -> Account | None:
        """Return the single account whose field equals value, or None.

        Used for email and for the nullable token fields. A None value never
        matches, so cleared tokens cannot be looked up.
        """
        column = users.c[translate_field(field_name)]
        if value is None:
            # column == None would compile to IS NULL
            return None
        with self.engine.connect() as conn:
            row = conn.execute(select(users).where(column == value).limit(1)).fetchone()
        return _row_to_account(row) if row is not None else None

    def find_by_id(self, account_id: int) -> Account | None:
        """Look up an account by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(select(users).where(users.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def find_many(
        self,
        filters: Mapping[str, Any] | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> tuple[list[Account], int]:
        """Return (rows, total_count) for an exact-match conjunction of filters.

        total_count is computed with the same WHERE clause but without
        LIMIT/OFFSET so callers can derive the number of pages. With no paging
        parameters every match is returned. Rows are ordered by id so pages
        are stable.
        """
        if limit is not None and limit < 0:
            raise ValidationError("limit must be non-negative.")
        if offset is not None and offset < 0:
            raise ValidationError("offset must be non-negative.")

        where = _where(filters or {})
        rows_stmt = select(users).order_by(users.c.id)
        count_stmt = select(func.count()).select_from(users)
        if where is not None:
            rows_stmt = rows_stmt.where(where)
            count_stmt = count_stmt.where(where)
        if limit is not None:
            rows_stmt = rows_stmt.limit(limit)
        if offset is not None:
            rows_stmt = rows_stmt.offset(offset)

        with self.engine.connect() as conn:
            rows = conn.execute(rows_stmt).fetchall()
            total = conn.execute(count_stmt).scalar()
        return [_row_to_account(r) for r in rows], int(total or 0)

    def count(self) -> int:
        """Return the number of accounts."""
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(users)).scalar()
        return result or 0

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(select(1))
        except SQLAlchemyError:
            logger.exception("Database ping failed")
            return False
        return True

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, fields: Mapping[str, Any]) -> Account:
        """Insert a new account and return the persisted row.

        Defaults: status = pending_verification, role = user when omitted.
        id and createdAt are generated here and may not be supplied.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        """
        generated = _GENERATED_FIELDS & set(fields)
        if generated:
            raise ImmutableField(f"Generated fields cannot be supplied: {sorted(generated)!r}")
        values = _to_columns(fields)
        values.setdefault("status", STATUS_PENDING)
        values.setdefault("role", ROLE_USER)
        if values["status"] is None:
            values["status"] = STATUS_PENDING
        if values["role"] is None:
            values["role"] = ROLE_USER
        values["created_at"] = _now_iso()

        with self.engine.begin() as conn:
            result = conn.execute(users.insert().values(**values))
            account_id = result.inserted_primary_key[0]
            row = conn.execute(select(users).where(users.c.id == account_id)).fetchone()
        return _row_to_account(row)

    def update(self, account_id: int, fields: Mapping[str, Any]) -> Account | None:
        """Apply a partial update and return the post-update row.

        Fields not present are left untouched. An empty mapping is a read-only
        fetch. Returns None if account_id does not exist.
        """
        immutable = _IMMUTABLE_FIELDS & set(fields)
        if immutable:
            raise ImmutableField(f"Fields cannot be modified: {sorted(immutable)!r}")
        values = _to_columns(fields)
        if not values:
            return self.find_by_id(account_id)

        with self.engine.begin() as conn:
            result = conn.execute(users.update().where(users.c.id == account_id).values(**values))
            if result.rowcount == 0:
                return None
            row = conn.execute(select(users).where(users.c.id == account_id)).fetchone()
        return _row_to_account(row)

    def delete(self, account_id: int) -> Account | None:
        """Delete an account and return its pre-deletion snapshot, or None.

        Cleanup of resources the row references (the avatar blob) is the
        caller's job.
        """
        with self.engine.begin() as conn:
            row = conn.execute(select(users).where(users.c.id == account_id)).fetchone()
            if row is None:
                return None
            conn.execute(users.delete().where(users.c.id == account_id))
        return _row_to_account(row)

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        name=row.name,
        phone_number=row.phone_number,
        address=row.address,
        avatar_url=row.avatar_url,
        role=row.role,
        status=row.status,
        email_verification_token=row.email_verification_token,
        reset_password_token=row.reset_password_token,
        refresh_token=row.refresh_token,
        google_id=row.google_id,
        created_at=row.created_at,
    )
