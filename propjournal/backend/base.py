from abc import ABC, abstractmethod
from dataclasses import dataclass, field


class BackendError(Exception):
    """A call to the data/auth service failed."""


class AuthenticationError(BackendError):
    pass


@dataclass
class AuthSession:
    user_id: str
    email: str
    access_token: str = ""
    refresh_token: str = ""


@dataclass
class Query:
    eq: dict = field(default_factory=dict)
    gte: dict = field(default_factory=dict)
    lte: dict = field(default_factory=dict)
    order: list[tuple[str, bool]] = field(default_factory=list)
    limit: int | None = None

    def order_by(self, column: str, desc: bool = False) -> "Query":
        self.order.append((column, desc))
        return self


class JournalBackend(ABC):
    """Auth plus user-scoped table access. One instance per browser session."""

    @abstractmethod
    def sign_up(self, email: str, password: str, username: str = "") -> AuthSession | None:
        ...

    @abstractmethod
    def sign_in(self, email: str, password: str) -> AuthSession:
        ...

    @abstractmethod
    def sign_out(self) -> None:
        ...

    @abstractmethod
    def current_session(self) -> AuthSession | None:
        ...

    @abstractmethod
    def request_password_reset(self, email: str, redirect_to: str) -> None:
        ...

    @abstractmethod
    def complete_password_reset(self, token: str, new_password: str, refresh_token: str = "") -> None:
        ...

    @abstractmethod
    def update_password(self, new_password: str) -> None:
        ...

    @abstractmethod
    def select(self, table: str, user_id: str, query: Query | None = None) -> list[dict]:
        ...

    @abstractmethod
    def insert(self, table: str, user_id: str, values: dict) -> dict:
        ...

    @abstractmethod
    def update(self, table: str, user_id: str, row_id: str, values: dict) -> bool:
        ...

    @abstractmethod
    def delete(self, table: str, user_id: str, row_id: str) -> bool:
        ...

    @abstractmethod
    def upsert_profile(self, user_id: str, username: str) -> dict:
        ...

    def close(self) -> None:
        pass
