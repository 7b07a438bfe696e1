"""
Account state reducers and round-robin rotation.

``Account`` values are immutable. Settlement of a transaction produces a
new account which the scheduler writes back into its pool, so only the
account's current holder can ever change it.
"""

from dataclasses import replace
from typing import Any, Dict, List, Optional

from .receipts import get_receipt_gas_cost
from .types import Account, Token


def apply_gas_cost(account: Account, gas_cost: Optional[int]) -> Account:
    """Deduct a paid gas cost from the locally tracked balance."""
    if not gas_cost:
        return account
    return replace(account, balance=account.balance - gas_cost)


def apply_receipt(account: Account, receipt: Optional[Dict[str, Any]]) -> Account:
    """Account after paying for the transaction behind ``receipt``."""
    return apply_gas_cost(account, get_receipt_gas_cost(receipt))


def add_bounty_token(account: Account, token: Token) -> Account:
    """Register ``token`` as a bounty of the account, once per address."""
    if any(t.address.lower() == token.address.lower() for t in account.bounty):
        return account
    return replace(account, bounty=(*account.bounty, token))


def rotate_accounts(accounts: List[Account]) -> None:
    """Move the first account to the end of the pool, in place."""
    if len(accounts) > 1:
        accounts.append(accounts.pop(0))


class AccountPool:
    """
    Round-robin owner of the bot's accounts.

    The account at the head of the pool is lent to one pair at a time;
    the settled account is written back before the pool rotates.
    """

    def __init__(self, main_account: Account, accounts: Optional[List[Account]] = None):
        self.main_account = main_account
        self.accounts: List[Account] = list(accounts or [])

    def current(self) -> Account:
        return self.accounts[0] if self.accounts else self.main_account

    def settle(self, account: Account) -> None:
        if self.accounts:
            self.accounts[0] = account
        else:
            self.main_account = account

    def rotate(self) -> None:
        rotate_accounts(self.accounts)
