import hashlib
import hmac
import logging
import sqlite3
import uuid
from datetime import datetime, timedelta
from pathlib import Path
from urllib.parse import urlencode

from propjournal.backend.base import AuthenticationError, AuthSession, BackendError, JournalBackend, Query
from propjournal.models import (
    ACCOUNTS_TABLE,
    PAYOUTS_TABLE,
    PHASES,
    PROFILES_TABLE,
    TABLE_COLUMNS,
    TRADE_TABLES,
    TRADES_TABLE,
    now_iso,
)


logger = logging.getLogger(__name__)

PASSWORD_ITERATIONS = 120000
RESET_TOKEN_HOURS = 1
MIN_PASSWORD_LENGTH = 6

TRADE_COLUMNS_SQL = """
    trade_date TEXT NOT NULL,
    day_of_week INTEGER,
    asset TEXT NOT NULL,
    killzone TEXT,
    direction TEXT,
    market_phase TEXT,
    setup TEXT,
    risk_pct REAL NOT NULL DEFAULT 0,
    rr REAL NOT NULL DEFAULT 0,
    outcome TEXT NOT NULL,
    pnl_money REAL NOT NULL DEFAULT 0,
    htf_screenshot_url TEXT,
    ltf_screenshot_url TEXT,
    comment TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
"""

LEGACY_ACCOUNT_ALIASES = {
    "account_number": ["account_num", "number", "acc_num"],
    "firm": ["company"],
    "size": ["account_size"],
    "balance": ["current_balance"],
    "phase": ["stage"],
    "max_drawdown_percent": ["max_drawdown", "max_drawdown_pct", "max_dd", "max_dd_pct", "dd_limit"],
    "profit_target_percent": ["profit_target", "profit_target_pct", "target", "target_pct"],
}


def get_conn(db_path: Path | str) -> sqlite3.Connection:
    conn = sqlite3.connect(str(db_path), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def table_columns(conn: sqlite3.Connection, table: str) -> list[str]:
    return [row["name"] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()]


def ensure_column(conn: sqlite3.Connection, table: str, column_name: str, definition: str) -> None:
    if column_name not in table_columns(conn, table):
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {definition}")


def legacy_phase(value) -> str:
    text = str(value or "").strip().lower()
    if "phase 1" in text or "phase1" in text or "фаза 1" in text:
        return "phase1"
    if "phase 2" in text or "phase2" in text or "фаза 2" in text:
        return "phase2"
    if "live" in text or "лайв" in text:
        return "live"
    return text


def _migration_1(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS users (
            id TEXT PRIMARY KEY,
            email TEXT NOT NULL UNIQUE,
            password_hash TEXT NOT NULL,
            password_salt TEXT NOT NULL,
            created_at TEXT NOT NULL
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS profiles (
            id TEXT PRIMARY KEY,
            username TEXT,
            created_at TEXT NOT NULL,
            FOREIGN KEY (id) REFERENCES users(id) ON DELETE CASCADE
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS accounts (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            account_number TEXT NOT NULL DEFAULT '',
            firm TEXT NOT NULL DEFAULT '',
            size REAL NOT NULL DEFAULT 0,
            phase TEXT NOT NULL DEFAULT 'phase1',
            balance REAL NOT NULL DEFAULT 0,
            max_drawdown_percent REAL NOT NULL DEFAULT 0,
            profit_target_percent REAL NOT NULL DEFAULT 0,
            status TEXT,
            created_at TEXT NOT NULL,
            FOREIGN KEY (user_id) REFERENCES users(id)
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS payouts (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            account_id TEXT NOT NULL,
            amount REAL NOT NULL,
            created_at TEXT NOT NULL,
            FOREIGN KEY (user_id) REFERENCES users(id),
            FOREIGN KEY (account_id) REFERENCES accounts(id) ON DELETE CASCADE
        )
        """
    )
    conn.execute(
        f"""
        CREATE TABLE IF NOT EXISTS trades (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            account_id TEXT NOT NULL,
            {TRADE_COLUMNS_SQL},
            FOREIGN KEY (user_id) REFERENCES users(id),
            FOREIGN KEY (account_id) REFERENCES accounts(id) ON DELETE CASCADE
        )
        """
    )
    conn.execute(
        f"""
        CREATE TABLE IF NOT EXISTS backtest_trades (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            {TRADE_COLUMNS_SQL},
            FOREIGN KEY (user_id) REFERENCES users(id)
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS password_resets (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            token_hash TEXT NOT NULL UNIQUE,
            expires_at TEXT NOT NULL,
            created_at TEXT NOT NULL,
            FOREIGN KEY (user_id) REFERENCES users(id)
        )
        """
    )


def _migration_2(conn: sqlite3.Connection) -> None:
    # Fold legacy alias columns into the canonical accounts schema.
    ensure_column(conn, "accounts", "account_number", "account_number TEXT NOT NULL DEFAULT ''")
    ensure_column(conn, "accounts", "firm", "firm TEXT NOT NULL DEFAULT ''")
    ensure_column(conn, "accounts", "size", "size REAL NOT NULL DEFAULT 0")
    ensure_column(conn, "accounts", "phase", "phase TEXT NOT NULL DEFAULT ''")
    ensure_column(conn, "accounts", "balance", "balance REAL NOT NULL DEFAULT 0")
    ensure_column(conn, "accounts", "max_drawdown_percent", "max_drawdown_percent REAL NOT NULL DEFAULT 0")
    ensure_column(conn, "accounts", "profit_target_percent", "profit_target_percent REAL NOT NULL DEFAULT 0")
    ensure_column(conn, "accounts", "status", "status TEXT")

    existing = table_columns(conn, "accounts")
    for canonical, aliases in LEGACY_ACCOUNT_ALIASES.items():
        for alias in aliases:
            if alias not in existing:
                continue
            conn.execute(
                f"""
                UPDATE accounts SET {canonical} = {alias}
                WHERE {alias} IS NOT NULL AND {alias} != ''
                  AND ({canonical} IS NULL OR {canonical} = '' OR {canonical} = 0)
                """
            )

    conn.execute("UPDATE accounts SET phase = 'phase1' WHERE phase IS NULL OR phase = ''")

    rows = conn.execute("SELECT id, phase FROM accounts").fetchall()
    for row in rows:
        phase = legacy_phase(row["phase"])
        if phase != row["phase"] and phase in PHASES:
            conn.execute("UPDATE accounts SET phase = ? WHERE id = ?", (phase, row["id"]))
    conn.execute("UPDATE accounts SET profit_target_percent = 0 WHERE phase = 'live'")


MIGRATIONS = [_migration_1, _migration_2]


def init_db(conn: sqlite3.Connection) -> int:
    version = int(conn.execute("PRAGMA user_version").fetchone()[0])
    for number, migration in enumerate(MIGRATIONS, start=1):
        if number <= version:
            continue
        try:
            migration(conn)
            conn.execute(f"PRAGMA user_version = {number}")
            conn.commit()
        except sqlite3.Error:
            conn.rollback()
            logger.exception("Migration %s failed", number)
            raise
        logger.info("Applied schema migration %s", number)
        version = number
    return version


def hash_password(password: str, salt: str) -> str:
    return hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        bytes.fromhex(salt),
        PASSWORD_ITERATIONS,
    ).hex()


def hash_token(raw_token: str) -> str:
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def scope_column(table: str) -> str:
    return "id" if table == PROFILES_TABLE else "user_id"


def _check_table(table: str) -> list[str]:
    if table not in TABLE_COLUMNS:
        raise BackendError(f"Unknown table: {table}")
    return TABLE_COLUMNS[table]


def _check_columns(table: str, names) -> None:
    allowed = _check_table(table)
    unknown = [name for name in names if name not in allowed]
    if unknown:
        raise BackendError(f"Unknown column(s) for {table}: {', '.join(unknown)}")


class SqliteBackend(JournalBackend):
    """Local single-file store that honours the hosted table contract."""

    def __init__(self, db_path: Path | str):
        self.db_path = db_path
        self.conn = get_conn(db_path)
        init_db(self.conn)
        self._session: AuthSession | None = None

    def close(self) -> None:
        self.conn.close()

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        try:
            cursor = self.conn.execute(sql, params)
            self.conn.commit()
            return cursor
        except sqlite3.Error as exc:
            self.conn.rollback()
            logger.error("sqlite call failed: %s", exc)
            raise BackendError(str(exc)) from exc

    def _fetch(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        try:
            return self.conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            logger.error("sqlite query failed: %s", exc)
            raise BackendError(str(exc)) from exc

    # auth

    def sign_up(self, email: str, password: str, username: str = "") -> AuthSession | None:
        email = email.strip().lower()
        if "@" not in email:
            raise AuthenticationError("Enter a valid email address.")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise AuthenticationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
        if self._fetch("SELECT id FROM users WHERE email = ?", (email,)):
            raise AuthenticationError("Email already registered.")

        user_id = str(uuid.uuid4())
        salt = uuid.uuid4().hex
        now = now_iso()
        try:
            self.conn.execute(
                """
                INSERT INTO users (id, email, password_hash, password_salt, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (user_id, email, hash_password(password, salt), salt, now),
            )
            self.conn.execute(
                "INSERT INTO profiles (id, username, created_at) VALUES (?, ?, ?)",
                (user_id, username.strip() or email.split("@")[0], now),
            )
            self.conn.commit()
        except sqlite3.IntegrityError as exc:
            self.conn.rollback()
            raise AuthenticationError("Email already registered.") from exc
        logger.info("Registered user %s", user_id)
        self._session = AuthSession(user_id=user_id, email=email)
        return self._session

    def sign_in(self, email: str, password: str) -> AuthSession:
        rows = self._fetch(
            "SELECT id, email, password_hash, password_salt FROM users WHERE email = ?",
            (email.strip().lower(),),
        )
        if not rows:
            raise AuthenticationError("Invalid email or password.")
        row = rows[0]
        candidate = hash_password(password, row["password_salt"])
        if not hmac.compare_digest(candidate, row["password_hash"]):
            raise AuthenticationError("Invalid email or password.")
        self._session = AuthSession(user_id=str(row["id"]), email=str(row["email"]))
        return self._session

    def sign_out(self) -> None:
        self._session = None

    def current_session(self) -> AuthSession | None:
        return self._session

    def request_password_reset(self, email: str, redirect_to: str) -> None:
        rows = self._fetch("SELECT id FROM users WHERE email = ?", (email.strip().lower(),))
        if not rows:
            logger.info("Password reset requested for unknown email")
            return
        raw_token = f"{uuid.uuid4().hex}{uuid.uuid4().hex}"
        now = datetime.now()
        expires = now + timedelta(hours=RESET_TOKEN_HOURS)
        self._execute(
            """
            INSERT INTO password_resets (user_id, token_hash, expires_at, created_at)
            VALUES (?, ?, ?, ?)
            """,
            (
                str(rows[0]["id"]),
                hash_token(raw_token),
                expires.isoformat(timespec="seconds"),
                now.isoformat(timespec="seconds"),
            ),
        )
        link = f"{redirect_to}?{urlencode({'page': 'reset-password', 'token': raw_token})}"
        logger.info("Password reset link for %s: %s", email.strip().lower(), link)

    def complete_password_reset(self, token: str, new_password: str, refresh_token: str = "") -> None:
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise AuthenticationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
        token_hash = hash_token(token.strip())
        rows = self._fetch(
            "SELECT user_id, expires_at FROM password_resets WHERE token_hash = ?",
            (token_hash,),
        )
        if not rows:
            raise AuthenticationError("Reset link is invalid or was already used.")
        if datetime.fromisoformat(rows[0]["expires_at"]) < datetime.now():
            self._execute("DELETE FROM password_resets WHERE token_hash = ?", (token_hash,))
            raise AuthenticationError("Reset link has expired. Request a new one.")
        self._set_password(str(rows[0]["user_id"]), new_password)
        self._execute("DELETE FROM password_resets WHERE token_hash = ?", (token_hash,))

    def update_password(self, new_password: str) -> None:
        if self._session is None:
            raise AuthenticationError("Not signed in.")
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise AuthenticationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
        self._set_password(self._session.user_id, new_password)

    def _set_password(self, user_id: str, new_password: str) -> None:
        salt = uuid.uuid4().hex
        self._execute(
            "UPDATE users SET password_hash = ?, password_salt = ? WHERE id = ?",
            (hash_password(new_password, salt), salt, user_id),
        )

    # tables

    def select(self, table: str, user_id: str, query: Query | None = None) -> list[dict]:
        query = query or Query()
        _check_columns(table, list(query.eq) + list(query.gte) + list(query.lte) + [c for c, _ in query.order])
        clauses = [f"{scope_column(table)} = ?"]
        params: list = [user_id]
        for column, value in query.eq.items():
            clauses.append(f"{column} = ?")
            params.append(value)
        for column, value in query.gte.items():
            clauses.append(f"{column} >= ?")
            params.append(value)
        for column, value in query.lte.items():
            clauses.append(f"{column} <= ?")
            params.append(value)
        sql = f"SELECT * FROM {table} WHERE {' AND '.join(clauses)}"
        if query.order:
            sql += " ORDER BY " + ", ".join(f"{c} {'DESC' if desc else 'ASC'}" for c, desc in query.order)
        if query.limit is not None:
            sql += " LIMIT ?"
            params.append(int(query.limit))
        return [dict(row) for row in self._fetch(sql, tuple(params))]

    def _get(self, table: str, row_id: str) -> dict:
        rows = self._fetch(f"SELECT * FROM {table} WHERE id = ?", (row_id,))
        return dict(rows[0]) if rows else {}

    def insert(self, table: str, user_id: str, values: dict) -> dict:
        values = {k: v for k, v in values.items() if k not in ("id", "user_id", "created_at", "updated_at")}
        _check_columns(table, values)
        now = now_iso()
        row = {"id": str(uuid.uuid4()), **values, "created_at": now}
        if table == PROFILES_TABLE:
            row["id"] = user_id
        else:
            row["user_id"] = user_id
        if table in TRADE_TABLES:
            row["updated_at"] = now
        if table == TRADES_TABLE or table == PAYOUTS_TABLE:
            self._check_account_owner(user_id, row.get("account_id"))
        columns = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)
        self._execute(f"INSERT INTO {table} ({columns}) VALUES ({placeholders})", tuple(row.values()))
        return self._get(table, row["id"])

    def _check_account_owner(self, user_id: str, account_id) -> None:
        rows = self._fetch("SELECT id FROM accounts WHERE id = ? AND user_id = ?", (str(account_id), user_id))
        if not rows:
            raise BackendError("Account not found.")

    def update(self, table: str, user_id: str, row_id: str, values: dict) -> bool:
        values = {k: v for k, v in values.items() if k not in ("id", "user_id", "created_at", "updated_at")}
        _check_columns(table, values)
        if table in TRADE_TABLES:
            values["updated_at"] = now_iso()
        if not values:
            return False
        if table == TRADES_TABLE and "account_id" in values:
            self._check_account_owner(user_id, values["account_id"])
        assignments = ", ".join(f"{column} = ?" for column in values)
        cursor = self._execute(
            f"UPDATE {table} SET {assignments} WHERE id = ? AND {scope_column(table)} = ?",
            (*values.values(), row_id, user_id),
        )
        return cursor.rowcount > 0

    def delete(self, table: str, user_id: str, row_id: str) -> bool:
        _check_table(table)
        if table == ACCOUNTS_TABLE:
            try:
                self.conn.execute("DELETE FROM trades WHERE user_id = ? AND account_id = ?", (user_id, row_id))
                self.conn.execute("DELETE FROM payouts WHERE user_id = ? AND account_id = ?", (user_id, row_id))
                cursor = self.conn.execute("DELETE FROM accounts WHERE user_id = ? AND id = ?", (user_id, row_id))
                self.conn.commit()
            except sqlite3.Error as exc:
                self.conn.rollback()
                logger.error("Delete account failed: %s", exc)
                raise BackendError(str(exc)) from exc
            return cursor.rowcount > 0
        cursor = self._execute(
            f"DELETE FROM {table} WHERE id = ? AND {scope_column(table)} = ?",
            (row_id, user_id),
        )
        return cursor.rowcount > 0

    def upsert_profile(self, user_id: str, username: str) -> dict:
        self._execute(
            """
            INSERT INTO profiles (id, username, created_at)
            VALUES (?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET username = excluded.username
            """,
            (user_id, username.strip(), now_iso()),
        )
        return self._get(PROFILES_TABLE, user_id)
