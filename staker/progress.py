"""Append-only record of beneficiaries whose delegation was confirmed."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, Iterator, Set, Union


logger = logging.getLogger(__name__)

MIN_LINE_LENGTH = 3


class ProgressLedger:
    """One confirmed account per line.

    The file is read once when the ledger is opened; afterwards the in-memory
    set only grows through :meth:`mark_done`.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._done: Set[str] = set()
        if not self.path.exists():
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.touch()
            logger.info("created progress log %s", self.path)
        with self.path.open("r", encoding="utf-8") as fh:
            for line in fh:
                account = line.strip()
                if len(account) >= MIN_LINE_LENGTH:
                    self._done.add(account)
        logger.info("loaded %d completed accounts from %s", len(self._done), self.path)

    def has(self, account: str) -> bool:
        return account in self._done

    def __contains__(self, account: object) -> bool:
        return account in self._done

    def __len__(self) -> int:
        return len(self._done)

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._done))

    def mark_done(self, accounts: Iterable[str]) -> None:
        """Append ``accounts`` and fsync before returning."""
        accounts = list(accounts)
        with self.path.open("a", encoding="utf-8") as fh:
            for account in accounts:
                fh.write(account + "\n")
            fh.flush()
            os.fsync(fh.fileno())
        self._done.update(accounts)
