import logging
from collections.abc import Callable

from postgrest.exceptions import APIError
from supabase import AuthError, Client, create_client

from propjournal.backend.base import AuthenticationError, AuthSession, BackendError, JournalBackend, Query
from propjournal.models import (
    ACCOUNTS_TABLE,
    PAYOUTS_TABLE,
    PROFILES_TABLE,
    TABLE_COLUMNS,
    TRADE_TABLES,
    TRADES_TABLE,
    now_iso,
)


logger = logging.getLogger(__name__)

RECOVERY_OTP_TYPE = "recovery"


def _session_from(response) -> AuthSession | None:
    session = getattr(response, "session", None)
    user = getattr(response, "user", None) or getattr(session, "user", None)
    if session is None or user is None:
        return None
    return AuthSession(
        user_id=str(user.id),
        email=str(getattr(user, "email", "") or ""),
        access_token=str(session.access_token or ""),
        refresh_token=str(session.refresh_token or ""),
    )


class SupabaseBackend(JournalBackend):
    """Hosted auth and row storage. Row-level security keys every table on user_id."""

    def __init__(self, url: str, key: str, client_factory: Callable[[str, str], Client] = create_client):
        self.url = url
        self.key = key
        self._client_factory = client_factory
        self._client: Client | None = None
        self._session: AuthSession | None = None

    @property
    def client(self) -> Client:
        if self._client is None:
            if not self.url or not self.key:
                raise BackendError("SUPABASE_URL and SUPABASE_KEY must be set.")
            self._client = self._client_factory(self.url, self.key)
        return self._client

    def _authed(self) -> Client:
        client = self.client
        if self._session is not None and self._session.access_token:
            client.postgrest.auth(self._session.access_token)
        return client

    def _remember(self, session: AuthSession | None) -> AuthSession | None:
        self._session = session
        if session is not None and session.access_token:
            self.client.postgrest.auth(session.access_token)
        return session

    # auth

    def sign_up(self, email: str, password: str, username: str = "") -> AuthSession | None:
        credentials = {"email": email.strip(), "password": password}
        if username.strip():
            credentials["options"] = {"data": {"username": username.strip()}}
        try:
            response = self.client.auth.sign_up(credentials)
        except AuthError as exc:
            raise AuthenticationError(str(exc)) from exc
        session = self._remember(_session_from(response))
        user = getattr(response, "user", None)
        if session is not None and username.strip():
            self.upsert_profile(session.user_id, username)
        logger.info("Signed up user %s", getattr(user, "id", "?"))
        return session

    def sign_in(self, email: str, password: str) -> AuthSession:
        try:
            response = self.client.auth.sign_in_with_password({"email": email.strip(), "password": password})
        except AuthError as exc:
            raise AuthenticationError(str(exc)) from exc
        session = _session_from(response)
        if session is None:
            raise AuthenticationError("Sign in did not return a session. Confirm your email first.")
        return self._remember(session)

    def sign_out(self) -> None:
        try:
            if self._client is not None:
                self._client.auth.sign_out()
        except AuthError as exc:
            logger.warning("Remote sign out failed: %s", exc)
        finally:
            self._session = None

    def current_session(self) -> AuthSession | None:
        return self._session

    def request_password_reset(self, email: str, redirect_to: str) -> None:
        try:
            self.client.auth.reset_password_for_email(
                email.strip(), {"redirect_to": f"{redirect_to}?page=reset-password"}
            )
        except AuthError as exc:
            raise AuthenticationError(str(exc)) from exc

    def complete_password_reset(self, token: str, new_password: str, refresh_token: str = "") -> None:
        """Accepts either an access/refresh token pair or a recovery token hash."""
        try:
            if refresh_token:
                response = self.client.auth.set_session(token, refresh_token)
            else:
                response = self.client.auth.verify_otp({"token_hash": token, "type": RECOVERY_OTP_TYPE})
            self._remember(_session_from(response))
            self.client.auth.update_user({"password": new_password})
        except AuthError as exc:
            raise AuthenticationError(str(exc)) from exc

    def update_password(self, new_password: str) -> None:
        if self._session is None:
            raise AuthenticationError("Not signed in.")
        try:
            self._authed().auth.update_user({"password": new_password})
        except AuthError as exc:
            raise AuthenticationError(str(exc)) from exc

    # tables

    def _scope(self, table: str) -> str:
        if table not in TABLE_COLUMNS:
            raise BackendError(f"Unknown table: {table}")
        return "id" if table == PROFILES_TABLE else "user_id"

    def select(self, table: str, user_id: str, query: Query | None = None) -> list[dict]:
        query = query or Query()
        request = self._authed().table(table).select("*").eq(self._scope(table), user_id)
        for column, value in query.eq.items():
            request = request.eq(column, value)
        for column, value in query.gte.items():
            request = request.gte(column, value)
        for column, value in query.lte.items():
            request = request.lte(column, value)
        for column, desc in query.order:
            request = request.order(column, desc=desc)
        if query.limit is not None:
            request = request.limit(int(query.limit))
        try:
            return list(request.execute().data or [])
        except APIError as exc:
            logger.error("select %s failed: %s", table, exc)
            raise BackendError(str(exc)) from exc

    def insert(self, table: str, user_id: str, values: dict) -> dict:
        row = {k: v for k, v in values.items() if k not in ("id", "created_at", "updated_at")}
        row[self._scope(table)] = user_id
        if table in TRADE_TABLES:
            row["updated_at"] = now_iso()
        try:
            data = self._authed().table(table).insert(row).execute().data
        except APIError as exc:
            logger.error("insert into %s failed: %s", table, exc)
            raise BackendError(str(exc)) from exc
        return dict(data[0]) if data else {}

    def update(self, table: str, user_id: str, row_id: str, values: dict) -> bool:
        row = {k: v for k, v in values.items() if k not in ("id", "user_id", "created_at", "updated_at")}
        if table in TRADE_TABLES:
            row["updated_at"] = now_iso()
        if not row:
            return False
        try:
            data = (
                self._authed()
                .table(table)
                .update(row)
                .eq("id", row_id)
                .eq(self._scope(table), user_id)
                .execute()
                .data
            )
        except APIError as exc:
            logger.error("update %s failed: %s", table, exc)
            raise BackendError(str(exc)) from exc
        return bool(data)

    def delete(self, table: str, user_id: str, row_id: str) -> bool:
        scope = self._scope(table)
        try:
            if table == ACCOUNTS_TABLE:
                for child in (TRADES_TABLE, PAYOUTS_TABLE):
                    self._authed().table(child).delete().eq("account_id", row_id).eq("user_id", user_id).execute()
            data = (
                self._authed()
                .table(table)
                .delete()
                .eq("id", row_id)
                .eq(scope, user_id)
                .execute()
                .data
            )
        except APIError as exc:
            logger.error("delete from %s failed: %s", table, exc)
            raise BackendError(str(exc)) from exc
        return bool(data)

    def upsert_profile(self, user_id: str, username: str) -> dict:
        try:
            data = (
                self._authed()
                .table(PROFILES_TABLE)
                .upsert({"id": user_id, "username": username.strip()}, on_conflict="id")
                .execute()
                .data
            )
        except APIError as exc:
            logger.error("profile upsert failed: %s", exc)
            raise BackendError(str(exc)) from exc
        return dict(data[0]) if data else {}
