"""Account list loading and chunking."""

from __future__ import annotations

from pathlib import Path
from typing import Container, List, Sequence, Union

from .progress import MIN_LINE_LENGTH


def read_account_list(path: Union[str, Path]) -> List[str]:
    """Read one account per line, skipping short lines and repeats."""
    accounts = {}
    with Path(path).open("r", encoding="utf-8") as fh:
        for line in fh:
            account = line.strip()
            if len(account) >= MIN_LINE_LENGTH:
                accounts.setdefault(account, None)
    return list(accounts)


def pending_accounts(accounts: Sequence[str], done: Container[str]) -> List[str]:
    """Accounts not yet in ``done``, in input order."""
    return [account for account in accounts if account not in done]


def partition(accounts: Sequence[str], chunk_size: int) -> List[List[str]]:
    if isinstance(chunk_size, bool) or not isinstance(chunk_size, int) or chunk_size <= 0:
        raise ValueError(f"chunk_size must be a positive integer: {chunk_size!r}")
    return [list(accounts[i:i + chunk_size]) for i in range(0, len(accounts), chunk_size)]
