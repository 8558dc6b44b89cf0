import logging
import math
import re
import uuid
from datetime import date, datetime
from pathlib import Path
from urllib.parse import parse_qs, urlsplit

import pandas as pd

from propjournal.backend.base import BackendError, JournalBackend, Query
from propjournal.models import (
    ACCOUNTS_TABLE,
    BACKTEST_TABLE,
    DIRECTIONS,
    KILLZONES,
    MARKET_PHASES,
    OUTCOMES,
    PAYOUTS_TABLE,
    PHASES,
    PROFILES_TABLE,
    TRADE_TABLES,
    TRADES_TABLE,
    AccountInput,
    TradeInput,
    accounts_frame,
    payouts_frame,
    to_num,
    trades_frame,
)


logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
USERNAME_MIN = 2
USERNAME_MAX = 32
IMAGE_SUFFIXES = (".png", ".jpg", ".jpeg", ".webp")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class ValidationError(ValueError):
    """Form input rejected before anything is written."""


def parse_number(value, label: str) -> float:
    """Strict form parsing: spaces, "%" and "$" are ignored, a comma works as the decimal point."""
    text = re.sub(r"[\s%$]", "", str(value if value is not None else "")).replace(",", ".")
    if not text:
        raise ValidationError(f"{label} is required.")
    try:
        number = float(text)
    except ValueError as exc:
        raise ValidationError(f"{label} must be a number.") from exc
    if not math.isfinite(number):
        raise ValidationError(f"{label} must be a number.")
    return number


# auth


def validate_email(email: str) -> str:
    email = email.strip()
    if not _EMAIL_RE.match(email):
        raise ValidationError("Enter a valid email address.")
    return email


def validate_new_password(password: str, confirm: str) -> str:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    if password != confirm:
        raise ValidationError("Passwords do not match.")
    return password


def validate_username(username: str) -> str:
    username = username.strip()
    if not USERNAME_MIN <= len(username) <= USERNAME_MAX:
        raise ValidationError(f"Username must be {USERNAME_MIN}-{USERNAME_MAX} characters.")
    return username


def register(backend: JournalBackend, email: str, password: str, confirm: str, username: str = ""):
    email = validate_email(email)
    validate_new_password(password, confirm)
    if username.strip():
        username = validate_username(username)
    return backend.sign_up(email, password, username)


def login(backend: JournalBackend, email: str, password: str):
    if not email.strip() or not password:
        raise ValidationError("Enter email and password.")
    return backend.sign_in(email, password)


def change_password(backend: JournalBackend, new_password: str, confirm: str) -> None:
    backend.update_password(validate_new_password(new_password, confirm))
    logger.info("Password changed")


def recovery_tokens(params) -> tuple[str, str]:
    """(token, refresh_token) from reset-link parameters.

    Hosted recovery links carry an access/refresh pair; the local store and
    token-hash email templates carry a single ``token``.
    """
    access_token = str(params.get("access_token") or "").strip()
    if access_token:
        return access_token, str(params.get("refresh_token") or "").strip()
    return str(params.get("token") or params.get("token_hash") or "").strip(), ""


def recovery_tokens_from_link(text: str) -> tuple[str, str]:
    """Accepts a pasted reset link (query string or #fragment) or a bare token."""
    text = text.strip()
    if "=" not in text:
        return text, ""
    parts = urlsplit(text)
    params = {}
    for chunk in (parts.query, parts.fragment):
        for key, values in parse_qs(chunk).items():
            params[key] = values[0]
    return recovery_tokens(params)


def reset_password(backend: JournalBackend, token: str, new_password: str, confirm: str, refresh_token: str = "") -> None:
    if not token.strip():
        raise ValidationError("The reset link is missing its token. Open the link from the email again.")
    backend.complete_password_reset(token.strip(), validate_new_password(new_password, confirm), refresh_token)


def get_profile(backend: JournalBackend, user_id: str) -> dict:
    rows = backend.select(PROFILES_TABLE, user_id, Query(limit=1))
    return rows[0] if rows else {}


def save_username(backend: JournalBackend, user_id: str, username: str) -> dict:
    return backend.upsert_profile(user_id, validate_username(username))


# accounts


def parse_account_form(form: dict) -> AccountInput:
    account_number = str(form.get("account_number") or "").strip()
    firm = str(form.get("firm") or "").strip()
    phase = str(form.get("phase") or "").strip().lower()
    if not account_number or not firm:
        raise ValidationError("Account number and firm are required.")
    if phase not in PHASES:
        raise ValidationError("Choose a phase.")

    size = parse_number(form.get("size"), "Size")
    balance = parse_number(form.get("balance"), "Balance")
    max_dd = parse_number(form.get("max_drawdown_percent"), "Max drawdown %")
    if phase == "live":
        target = 0.0
    else:
        target = parse_number(form.get("profit_target_percent"), "Profit target %")

    if size <= 0:
        raise ValidationError("Size must be greater than 0.")
    if balance < 0:
        raise ValidationError("Balance cannot be negative.")
    if not 0 < max_dd < 100:
        raise ValidationError("Max drawdown % must be between 0 and 100.")
    if target < 0:
        raise ValidationError("Profit target % cannot be negative.")

    return AccountInput(
        account_number=account_number,
        firm=firm,
        size=size,
        phase=phase,
        balance=balance,
        max_drawdown_percent=max_dd,
        profit_target_percent=target,
    )


def get_accounts(backend: JournalBackend, user_id: str) -> pd.DataFrame:
    rows = backend.select(ACCOUNTS_TABLE, user_id, Query().order_by("created_at", desc=True))
    return accounts_frame(rows)


def get_account(backend: JournalBackend, user_id: str, account_id: str) -> dict | None:
    rows = backend.select(ACCOUNTS_TABLE, user_id, Query(eq={"id": account_id}, limit=1))
    if not rows:
        return None
    return accounts_frame(rows).iloc[0].to_dict()


def add_account(backend: JournalBackend, user_id: str, account: AccountInput) -> dict:
    row = backend.insert(ACCOUNTS_TABLE, user_id, account.to_row())
    logger.info("Added account %s", row.get("id"))
    return row


def update_account(backend: JournalBackend, user_id: str, account_id: str, account: AccountInput) -> bool:
    values = account.to_row()
    # status is only written by explicit actions
    values.pop("status", None)
    return backend.update(ACCOUNTS_TABLE, user_id, account_id, values)


def mark_blown(backend: JournalBackend, user_id: str, account_id: str) -> bool:
    return backend.update(ACCOUNTS_TABLE, user_id, account_id, {"status": "blown"})


def delete_account(backend: JournalBackend, user_id: str, account_id: str) -> bool:
    deleted = backend.delete(ACCOUNTS_TABLE, user_id, account_id)
    if deleted:
        logger.info("Deleted account %s", account_id)
    return deleted


def get_payouts(backend: JournalBackend, user_id: str, account_id: str | None = None) -> pd.DataFrame:
    query = Query().order_by("created_at", desc=True)
    if account_id is not None:
        query.eq["account_id"] = account_id
    return payouts_frame(backend.select(PAYOUTS_TABLE, user_id, query))


def withdraw_profit(backend: JournalBackend, user_id: str, account: dict) -> float:
    """Record the live profit as a payout, then reset the balance to the account size."""
    if str(account.get("phase")) != "live":
        raise ValidationError("Profit can only be withdrawn from live accounts.")
    size = to_num(account.get("size"))
    amount = round(to_num(account.get("balance")) - size, 2)
    if amount <= 0:
        raise ValidationError("There is no profit to withdraw.")

    account_id = str(account["id"])
    payout = backend.insert(PAYOUTS_TABLE, user_id, {"account_id": account_id, "amount": amount})
    payout_id = payout.get("id", "?")
    try:
        reset = backend.update(ACCOUNTS_TABLE, user_id, account_id, {"balance": size})
    except BackendError as exc:
        logger.error("Payout %s recorded but balance reset failed for account %s: %s", payout_id, account_id, exc)
        raise BackendError(f"Payout of ${amount:,.2f} was recorded but the balance was not reset: {exc}") from exc
    if not reset:
        logger.error("Payout %s recorded but account %s was not found for balance reset", payout_id, account_id)
        raise BackendError(f"Payout of ${amount:,.2f} was recorded but the balance was not reset.")
    logger.info("Withdrew %.2f from account %s (payout %s)", amount, account_id, payout_id)
    return amount


# trades


def parse_trade_form(form: dict, live: bool = False) -> TradeInput:
    trade_date = form.get("trade_date")
    if isinstance(trade_date, datetime):
        trade_date = trade_date.date()
    if isinstance(trade_date, date):
        trade_date = trade_date.isoformat()
    trade_date = str(trade_date or "").strip()
    if not trade_date:
        raise ValidationError("Pick the trade date.")
    try:
        date.fromisoformat(trade_date[:10])
    except ValueError as exc:
        raise ValidationError("Trade date must be YYYY-MM-DD.") from exc

    asset = str(form.get("asset") or "").strip()
    if not asset:
        raise ValidationError("Enter the asset (for example XAUUSD).")

    choices = (
        ("killzone", KILLZONES),
        ("direction", DIRECTIONS),
        ("market_phase", MARKET_PHASES),
        ("outcome", OUTCOMES),
    )
    for key, allowed in choices:
        if form.get(key) not in allowed:
            raise ValidationError(f"Choose a valid {key.replace('_', ' ')}.")

    account_id = form.get("account_id")
    if live and not account_id:
        raise ValidationError("Choose the account for this trade.")

    return TradeInput(
        trade_date=trade_date[:10],
        asset=asset,
        killzone=form["killzone"],
        direction=form["direction"],
        market_phase=form["market_phase"],
        outcome=form["outcome"],
        pnl_money=to_num(form.get("pnl_money")),
        risk_pct=to_num(form.get("risk_pct", 1)),
        rr=to_num(form.get("rr", 2)),
        setup=str(form.get("setup") or ""),
        htf_screenshot_url=str(form.get("htf_screenshot_url") or ""),
        ltf_screenshot_url=str(form.get("ltf_screenshot_url") or ""),
        comment=str(form.get("comment") or ""),
        account_id=str(account_id) if live else None,
    )


def _check_trade_table(table: str) -> None:
    if table not in TRADE_TABLES:
        raise BackendError(f"Not a trade table: {table}")


def _trade_row(trade: TradeInput, table: str) -> dict:
    row = trade.to_row()
    if table == BACKTEST_TABLE:
        row.pop("account_id", None)
    return row


def get_trades(
    backend: JournalBackend,
    user_id: str,
    table: str = TRADES_TABLE,
    start: date | None = None,
    end: date | None = None,
    account_id: str | None = None,
) -> pd.DataFrame:
    _check_trade_table(table)
    query = Query().order_by("trade_date", desc=True).order_by("created_at", desc=True)
    if start is not None:
        query.gte["trade_date"] = start.isoformat()
    if end is not None:
        query.lte["trade_date"] = end.isoformat()
    if account_id is not None and table == TRADES_TABLE:
        query.eq["account_id"] = account_id
    return trades_frame(backend.select(table, user_id, query))


def save_trade(backend: JournalBackend, user_id: str, trade: TradeInput, table: str = BACKTEST_TABLE) -> dict:
    _check_trade_table(table)
    row = backend.insert(table, user_id, _trade_row(trade, table))
    logger.info("Saved %s row %s", table, row.get("id"))
    return row


SCREENSHOT_COLUMNS = ("htf_screenshot_url", "ltf_screenshot_url")


def update_trade(
    backend: JournalBackend,
    user_id: str,
    trade_id: str,
    trade: TradeInput,
    table: str = BACKTEST_TABLE,
    image_dir: Path | None = None,
) -> bool:
    _check_trade_table(table)
    row = _trade_row(trade, table)
    previous = backend.select(table, user_id, Query(eq={"id": trade_id}, limit=1)) if image_dir is not None else []
    updated = backend.update(table, user_id, trade_id, row)
    # replaced screenshots are dropped once the new reference is stored
    if updated and previous:
        for key in SCREENSHOT_COLUMNS:
            old = previous[0].get(key)
            if old and old != row.get(key):
                remove_local_image(old, image_dir, user_id)
    return updated


def delete_trade(
    backend: JournalBackend,
    user_id: str,
    trade_id: str,
    table: str = BACKTEST_TABLE,
    image_dir: Path | None = None,
) -> bool:
    _check_trade_table(table)
    rows = backend.select(table, user_id, Query(eq={"id": trade_id}, limit=1))
    deleted = backend.delete(table, user_id, trade_id)
    if deleted and rows and image_dir is not None:
        for key in SCREENSHOT_COLUMNS:
            remove_local_image(rows[0].get(key), image_dir, user_id)
    return deleted


# screenshots


def save_trade_image(
    image_dir: Path,
    user_id: str,
    uploaded_file=None,
    pasted_image_bytes: bytes | None = None,
) -> str:
    if uploaded_file is None and pasted_image_bytes is None:
        return ""

    user_dir = user_image_dir(image_dir, user_id)
    user_dir.mkdir(parents=True, exist_ok=True)

    if pasted_image_bytes is not None:
        suffix = ".png"
    else:
        suffix = Path(uploaded_file.name).suffix.lower() or ".png"
    if suffix not in IMAGE_SUFFIXES:
        raise ValidationError(f"Screenshots must be one of: {', '.join(IMAGE_SUFFIXES)}")

    filename = f"{datetime.now().strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:10]}{suffix}"
    destination = user_dir / filename
    if pasted_image_bytes is not None:
        destination.write_bytes(pasted_image_bytes)
    else:
        destination.write_bytes(uploaded_file.getvalue())
    return str(destination)


def user_image_dir(image_dir: Path, user_id: str) -> Path:
    return Path(image_dir) / f"user_{user_id}"


def is_local_image(reference, image_dir: Path, user_id: str) -> bool:
    """True only for an existing file inside this user's own screenshot folder."""
    if not reference:
        return False
    path = Path(str(reference))
    try:
        path.resolve().relative_to(user_image_dir(image_dir, user_id).resolve())
    except ValueError:
        return False
    return path.is_file()


def remove_local_image(reference, image_dir: Path, user_id: str) -> None:
    if is_local_image(reference, image_dir, user_id):
        Path(str(reference)).unlink(missing_ok=True)
