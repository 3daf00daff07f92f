"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts and the deployment.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user / _row_to_deployment are the mappers.
Route and admission code never touches SQL directly.

Security:
  All queries use bound parameters. Column names passed to update_user() and
  update_deployment() are checked against the table before any SQL is built.

Concurrency:
  UNIQUE(username) is enforced by the schema, not only by the admission
  pre-check. The pre-check-then-insert sequence is not atomic, so the
  IntegrityError from create_user() is the real duplicate guard.

  deployments and owner_slot are single-row tables (CHECK id = 1). Both are
  claimed with insert-if-absent: concurrent callers race on the primary key
  and exactly one insert wins.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    func,
    select,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.models import Deployment, Rank, User, WhitelistStatus

logger = logging.getLogger("cadgate.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("temp_password", Text),  # set by the password-reset flow
    Column("rank", String(16), nullable=False, server_default=Rank.USER.value),
    Column("whitelist_status", String(16), nullable=False, server_default=WhitelistStatus.ACCEPTED.value),
    Column("banned", Boolean, nullable=False, server_default="0"),
    Column("is_dispatch", Boolean, nullable=False, server_default="0"),
    Column("is_leo", Boolean, nullable=False, server_default="0"),
    Column("is_ems_fd", Boolean, nullable=False, server_default="0"),
    Column("is_supervisor", Boolean, nullable=False, server_default="0"),
    Column("is_tow", Boolean, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
)

_deployments = Table(
    "deployments",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=False),
    Column("owner_id", Integer, nullable=False),
    Column("name", String(255), nullable=False, server_default="My CAD"),
    Column("whitelisted", Boolean, nullable=False, server_default="0"),
    Column("tow_whitelisted", Boolean, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
    CheckConstraint("id = 1", name="single_deployment"),
)

_owner_slot = Table(
    "owner_slot",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=False),
    Column("user_id", Integer, nullable=False),
    Column("claimed_at", String(32), nullable=False),
    CheckConstraint("id = 1", name="single_owner_slot"),
)

_DEPLOYMENT_ID = 1

# Columns a caller may change through update_user(). id, username and
# created_at are immutable after creation.
_USER_MUTABLE = frozenset(c.name for c in _users.columns) - {"id", "username", "created_at"}
_DEPLOYMENT_MUTABLE = frozenset({"name", "whitelisted", "tow_whitelisted"})


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block during writes.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _plain(value):
    return value.value if isinstance(value, Enum) else value


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User and Deployment entities.

    Usage:
        store = UserStore("sqlite:///:memory:")
        uid = store.create_user(User(username="dispatcher", hashed_password=hash_password("secret")))
        user = store.get_by_username("dispatcher")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def count_users(self) -> int:
        """Return the number of existing accounts."""
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return result or 0

    def create_user(self, user: User) -> int:
        """Insert a new user with only username and password; return its ID.

        Policy columns (rank, whitelist status, capability flags) keep their
        server defaults; the admission controller sets them afterwards with
        update_user().

        Raises sqlalchemy.exc.IntegrityError if the username already exists.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    username=user.username,
                    hashed_password=user.hashed_password,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_username(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def update_user(self, user_id: int, **fields) -> bool:
        """Apply one update statement to an existing user.

        Enum values (Rank, WhitelistStatus) are stored by value. Unknown or
        immutable columns raise ValueError before any SQL runs.

        Returns True if a row was updated, False if user_id was not found.
        """
        unknown = set(fields) - _USER_MUTABLE
        if unknown:
            raise ValueError(f"Unknown or immutable user fields: {sorted(unknown)!r}")
        if not fields:
            return False
        values = {k: _plain(v) for k, v in fields.items()}
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**values))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Owner slot
    # ------------------------------------------------------------------

    def claim_owner_slot(self, user_id: int) -> bool:
        """Atomically claim the installation's single owner slot.

        Returns True for the first caller only. Concurrent claimants race on
        the primary key; every loser sees IntegrityError and gets False.
        """
        try:
            with self.engine.connect() as conn:
                conn.execute(_owner_slot.insert().values(id=1, user_id=user_id, claimed_at=_now_iso()))
                conn.commit()
        except IntegrityError:
            logger.info("Owner slot already claimed; user_id=%s not elected", user_id)
            return False
        return True

    # ------------------------------------------------------------------
    # Deployment
    # ------------------------------------------------------------------

    def get_deployment(self) -> Deployment | None:
        with self.engine.connect() as conn:
            row = conn.execute(_deployments.select().where(_deployments.c.id == _DEPLOYMENT_ID)).fetchone()
        return _row_to_deployment(row) if row is not None else None

    def find_or_create_deployment(self, owner_id: int) -> Deployment:
        """Return the installation's deployment, creating it owned by owner_id if absent.

        Only the first call ever creates the row; owner_id is ignored when the
        deployment already exists. A losing concurrent insert is swallowed and
        the winner's row is read back.
        """
        existing = self.get_deployment()
        if existing is not None:
            return existing
        try:
            with self.engine.connect() as conn:
                conn.execute(
                    _deployments.insert().values(
                        id=_DEPLOYMENT_ID,
                        owner_id=owner_id,
                        created_at=_now_iso(),
                    )
                )
                conn.commit()
            logger.info("Deployment created (owner_id=%s)", owner_id)
        except IntegrityError:
            logger.debug("Deployment created concurrently; reading existing row")
        deployment = self.get_deployment()
        if deployment is None:
            raise RuntimeError("Deployment row missing after insert")
        return deployment

    def update_deployment(self, **fields) -> bool:
        """Update the deployment's name or whitelist flags.

        Only keys in _DEPLOYMENT_MUTABLE are accepted; anything else raises
        ValueError. Returns False if the deployment does not exist yet.
        """
        unknown = set(fields) - _DEPLOYMENT_MUTABLE
        if unknown:
            raise ValueError(f"Unknown deployment fields: {sorted(unknown)!r}")
        if not fields:
            return False
        with self.engine.connect() as conn:
            result = conn.execute(
                _deployments.update().where(_deployments.c.id == _DEPLOYMENT_ID).values(**fields)
            )
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Run a trivial query to verify the database is reachable."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception:
            logger.exception("Database ping failed")
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        hashed_password=row.hashed_password,
        temp_password=row.temp_password,
        rank=Rank(row.rank),
        whitelist_status=WhitelistStatus(row.whitelist_status),
        banned=bool(row.banned),
        is_dispatch=bool(row.is_dispatch),
        is_leo=bool(row.is_leo),
        is_ems_fd=bool(row.is_ems_fd),
        is_supervisor=bool(row.is_supervisor),
        is_tow=bool(row.is_tow),
        created_at=row.created_at,
    )


def _row_to_deployment(row) -> Deployment:
    return Deployment(
        id=row.id,
        owner_id=row.owner_id,
        name=row.name,
        whitelisted=bool(row.whitelisted),
        tow_whitelisted=bool(row.tow_whitelisted),
        created_at=row.created_at,
    )
