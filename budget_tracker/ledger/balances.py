"""
Balance Calculator

Balances are always derived by replaying the ledger; nothing here
reads or writes a stored balance.
"""

from datetime import date
from decimal import Decimal
from typing import Mapping, Optional

from budget_tracker.dates import DateLike, to_date_key
from budget_tracker.models.ledger import Account, DayBucket, Transaction, TransactionType


def transaction_delta(account: Account, tx: Transaction) -> Decimal:
    """
    Signed effect of one transaction on one account's balance.

    Asset accounts: income adds, spending subtracts, outgoing transfers
    subtract and incoming transfers add. Credit accounts track money owed,
    so every sign is inverted: a payment (income or incoming transfer)
    lowers the balance, spending and cash advances raise it.
    """
    sign = Decimal("-1") if account.is_credit else Decimal("1")

    if tx.type == TransactionType.TRANSFER:
        if tx.account_id == account.id:
            return -sign * tx.amount
        if tx.transfer_to_account_id == account.id:
            return sign * tx.amount
        return Decimal("0")

    if tx.account_id != account.id:
        return Decimal("0")
    if tx.type == TransactionType.INCOME:
        return sign * tx.amount
    return -sign * tx.amount


def get_account_balance(
    days: Mapping[str, DayBucket],
    account: Account,
    as_of: Optional[DateLike] = None,
    today: Optional[date] = None,
) -> Decimal:
    """
    Replay the ledger to get an account's balance as of a date.

    Args:
        days: Day buckets keyed by date
        account: The account to compute
        as_of: Inclusive cut-off date; defaults to ``today``
        today: Current date; defaults to the system date

    Entries dated before the account's creation day never count, even if
    they reference the account.
    """
    if as_of is None:
        as_of = today or date.today()
    as_of_key = to_date_key(as_of)
    created_key = account.created_key

    balance = account.initial_balance
    for date_key in sorted(days):
        if date_key < created_key:
            continue
        if date_key > as_of_key:
            break
        for tx in days[date_key].iter_transactions():
            balance += transaction_delta(account, tx)
    return balance


def get_balances(
    days: Mapping[str, DayBucket],
    accounts: Mapping[str, Account],
    as_of: Optional[DateLike] = None,
    today: Optional[date] = None,
) -> dict[str, Decimal]:
    """Balance of every account as of a date."""
    return {
        account_id: get_account_balance(days, account, as_of=as_of, today=today)
        for account_id, account in accounts.items()
    }
