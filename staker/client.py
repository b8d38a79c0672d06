"""High-level staking client: plan a run and drive it to completion."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from .abi import Asset, EncodingError, format_units, to_units
from .batching import partition, pending_accounts, read_account_list
from .config import StakerConfig
from .engine import BroadcastConfirmEngine, RunSummary
from .ledger import LedgerClient, LedgerError
from .progress import ProgressLedger
from .retry import RetryExhaustedError
from .signer import SigningError, TransactionSigner
from .transaction import DelegationBuilder
from .validation import ValidationError, validate_account_name


logger = logging.getLogger(__name__)


class StakerError(RuntimeError):
    """Fatal error that ends the run."""


def per_account_amount(budget_units: int, account_count: int) -> int:
    """Uniform share of the budget, truncated. The remainder stays undelegated."""
    if account_count <= 0:
        raise ValueError("account_count must be positive")
    return budget_units // account_count


def split_stake(amount: int, mode: str, symbol: str, precision: int) -> Tuple[Asset, Asset]:
    """Return (cpu, net) stake for one account."""
    if mode == "cpu":
        cpu, net = amount, 0
    elif mode == "net":
        cpu, net = 0, amount
    elif mode == "split":
        net = amount // 2
        cpu = amount - net
    else:
        raise ValueError(f"unknown mode: {mode}")
    return Asset(cpu, symbol, precision), Asset(net, symbol, precision)


@dataclass
class Plan:
    accounts: List[str]
    pending: List[str]
    chunks: List[List[str]]
    progress: ProgressLedger = field(repr=False)


@dataclass(frozen=True)
class Allocation:
    per_account: int
    cpu: Asset
    net: Asset
    budget: int
    done_count: int

    @property
    def required(self) -> int:
        """Budget minus the share already delegated to recorded accounts."""
        return self.budget - self.per_account * self.done_count


class StakerClient:
    """Delegates the configured budget to every account in the account list."""

    def __init__(
        self,
        config: StakerConfig,
        ledger: Optional[LedgerClient] = None,
        signer: Optional[TransactionSigner] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        try:
            self.signer = signer or TransactionSigner(config.keys)
            self.ledger = ledger or LedgerClient(config.node_url)
        except (SigningError, LedgerError) as exc:
            raise StakerError(f"Client setup failed: {exc}") from exc
        self.sleep = sleep
        self.clock = clock

    def close(self) -> None:
        self.ledger.close()

    def __enter__(self) -> "StakerClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def plan(self) -> Plan:
        """Read the inputs and split the pending accounts into chunks."""
        try:
            accounts = read_account_list(self.config.accounts_file)
        except (OSError, UnicodeDecodeError) as exc:
            raise StakerError(f"opening {self.config.accounts_file}: {exc}") from exc
        try:
            for account in accounts:
                validate_account_name(account)
        except ValidationError as exc:
            raise StakerError(f"{self.config.accounts_file}: {exc}") from exc
        try:
            progress = ProgressLedger(self.config.progress_file)
        except (OSError, UnicodeDecodeError) as exc:
            raise StakerError(f"opening {self.config.progress_file}: {exc}") from exc

        pending = pending_accounts(accounts, progress)
        chunks = partition(pending, self.config.chunk_size)
        logger.info("Loaded accounts: %d (%d pending)", len(accounts), len(pending))
        logger.info("Chunks: %d", len(chunks))
        return Plan(accounts=accounts, pending=pending, chunks=chunks, progress=progress)

    def allocation(self, plan: Plan) -> Allocation:
        budget = to_units(self.config.use_balance, self.config.precision)
        per_account = per_account_amount(budget, len(plan.accounts))
        cpu, net = split_stake(per_account, self.config.mode, self.config.symbol, self.config.precision)
        done_count = len(plan.accounts) - len(plan.pending)
        return Allocation(
            per_account=per_account, cpu=cpu, net=net, budget=budget, done_count=done_count
        )

    def check_balance(self, allocation: Allocation) -> int:
        """Abort unless the custodian can cover every pending delegation."""
        symbol, precision = self.config.symbol, self.config.precision
        try:
            balance = self.ledger.get_balance(
                self.config.account, symbol, precision, code=self.config.token_contract
            )
        except LedgerError as exc:
            raise StakerError(f"Balance lookup failed: {exc}") from exc
        logger.info("%s balance: %s", symbol, format_units(balance, precision))
        logger.info("Using %s balance: %s", symbol, format_units(allocation.required, precision))
        if balance < allocation.required:
            raise StakerError(
                f"Not enough {symbol} balance: have {format_units(balance, precision)}, "
                f"need {format_units(allocation.required, precision)}"
            )
        return balance

    def build_engine(self, progress: ProgressLedger) -> BroadcastConfirmEngine:
        retry = self.config.retry
        builder = DelegationBuilder(
            self.ledger,
            self.config.account,
            reference_retry=retry.reference_policy,
            clock=self.clock,
            sleep=self.sleep,
        )
        return BroadcastConfirmEngine(
            self.ledger,
            builder,
            self.signer,
            progress,
            resend_retry=retry.resend_policy,
            settle_wait=retry.settle_wait,
            revalidate_wait=retry.revalidate_wait,
            sleep=self.sleep,
        )

    def run(self, dry_run: bool = False) -> RunSummary:
        """Delegate to every pending account. Returns an empty summary if none."""
        plan = self.plan()
        if not plan.chunks:
            logger.info("No chunks to process.")
            return RunSummary()

        allocation = self.allocation(plan)
        logger.info(
            "Stake per account: cpu %s, net %s (mode %s)",
            allocation.cpu,
            allocation.net,
            self.config.mode,
        )
        if allocation.per_account == 0:
            raise StakerError("Budget too small: per-account stake rounds down to zero")
        self.check_balance(allocation)
        if dry_run:
            logger.info("Dry run: %d chunks would be sent", len(plan.chunks))
            return RunSummary()

        engine = self.build_engine(plan.progress)
        try:
            summary = engine.run(plan.chunks, allocation.cpu, allocation.net)
        except (LedgerError, SigningError, EncodingError, RetryExhaustedError) as exc:
            raise StakerError(f"Delegation failed: {exc}") from exc
        logger.info(
            "Done: %d accounts in %d chunks (%d resends)",
            summary.accounts,
            summary.chunks,
            summary.resends,
        )
        return summary
