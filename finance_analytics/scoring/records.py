"""
Record normalization.

Raw documents from the store are loosely typed: amounts arrive as numbers or
strings, dates as ISO strings with or without a time part, and optional
fields are missing, ``None`` or empty. Every engine consumes the value
objects defined here instead, so coercion happens exactly once.

Coercion rules:
- amount: int/float/numeric string -> float; anything else (None, bool,
  garbage strings, NaN, inf) -> 0.0
- date: ISO-8601 string, ``datetime`` or ``date`` -> naive ``datetime``;
  unparseable -> None (the record drops out of date-keyed buckets)
- free-text fields: stripped, empty -> None
"""
import math
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Iterable, Optional

from finance_analytics.logging import get_logger

logger = get_logger(__name__)

INCOME = "income"
EXPENSE = "expense"


@dataclass(frozen=True)
class Transaction:
    """A single normalized income or expense record."""
    id: Optional[str]
    user_id: Optional[str]
    type: str
    amount: float
    date: Optional[datetime]
    category: Optional[str] = None
    name: Optional[str] = None
    merchant: Optional[str] = None
    location: Optional[str] = None
    account_id: Optional[str] = None

    @property
    def is_income(self) -> bool:
        return self.type == INCOME

    @property
    def is_expense(self) -> bool:
        return self.type == EXPENSE

    @property
    def cost(self) -> float:
        """Magnitude of the transaction, the sign convention for expenses."""
        return abs(self.amount)


@dataclass(frozen=True)
class BankAccount:
    """A normalized bank account with a guaranteed float balance."""
    id: Optional[str]
    user_id: Optional[str]
    balance: float
    timestamp: Optional[datetime] = None
    account_type: Optional[str] = None
    name: Optional[str] = None
    credit_limit: Optional[float] = None

    @property
    def is_credit(self) -> bool:
        """Credit lines are recognized by their type or name."""
        return any("credit" in (text or "").lower() for text in (self.account_type, self.name))


@dataclass(frozen=True)
class UserFinancialProfile:
    """Subset of the user document the engines care about."""
    monthly_income: Optional[float] = None


def coerce_amount(value: Any) -> float:
    """Coerce a raw numeric field to float, falling back to 0.0."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip().replace(",", ""))
        except ValueError:
            return 0.0
    else:
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


def parse_date(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 date or date-time into a naive datetime."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return parsed.replace(tzinfo=None)


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _first(raw: Mapping, *keys: str) -> Any:
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return None


def normalize_transaction(raw: Mapping) -> Transaction:
    """Build a Transaction from a raw store document."""
    raw_type = _clean_text(raw.get("type")) or ""
    return Transaction(
        id=_clean_text(_first(raw, "id", "transaction_id")),
        user_id=_clean_text(_first(raw, "userId", "user_id")),
        type=raw_type.lower(),
        amount=coerce_amount(raw.get("amount")),
        date=parse_date(raw.get("date")),
        category=_clean_text(raw.get("category")),
        name=_clean_text(raw.get("name")),
        merchant=_clean_text(raw.get("merchant")),
        location=_clean_text(raw.get("location")),
        account_id=_clean_text(_first(raw, "accountId", "account_id")),
    )


def normalize_transactions(raws: Optional[Iterable[Any]]) -> list[Transaction]:
    """Normalize a batch, skipping entries that are not documents."""
    if not raws:
        return []

    transactions = []
    skipped = 0
    for raw in raws:
        if isinstance(raw, Transaction):
            transactions.append(raw)
        elif isinstance(raw, Mapping):
            transactions.append(normalize_transaction(raw))
        else:
            skipped += 1

    if skipped:
        logger.warning("malformed_transactions_skipped", skipped=skipped)
    return transactions


def _positive_or_none(value: Any) -> Optional[float]:
    amount = coerce_amount(value)
    return amount if amount > 0 else None


def normalize_account(raw: Mapping) -> BankAccount:
    """Build a BankAccount from a raw store document."""
    return BankAccount(
        id=_clean_text(raw.get("id")),
        user_id=_clean_text(_first(raw, "userId", "user_id")),
        balance=coerce_amount(raw.get("balance")),
        timestamp=parse_date(raw.get("timestamp")),
        account_type=_clean_text(_first(raw, "accountType", "account_type", "type")),
        name=_clean_text(_first(raw, "accountName", "account_name", "name")),
        credit_limit=_positive_or_none(_first(raw, "creditLimit", "credit_limit")),
    )


def normalize_accounts(raws: Optional[Iterable[Any]]) -> list[BankAccount]:
    if not raws:
        return []
    accounts = []
    for raw in raws:
        if isinstance(raw, BankAccount):
            accounts.append(raw)
        elif isinstance(raw, Mapping):
            accounts.append(normalize_account(raw))
    return accounts


def normalize_profile(raw: Optional[Mapping]) -> UserFinancialProfile:
    """
    Extract the financial profile from a user document.

    The monthly income lives under ``financialProfile.monthlyIncome``; a flat
    ``monthlyIncome`` key is accepted too. Missing or non-positive values mean
    "no profile income".
    """
    if not raw:
        return UserFinancialProfile()

    nested = raw.get("financialProfile")
    source = nested if isinstance(nested, Mapping) else raw
    income = coerce_amount(_first(source, "monthlyIncome", "monthly_income"))
    return UserFinancialProfile(monthly_income=income if income > 0 else None)
