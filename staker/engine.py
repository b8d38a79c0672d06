"""Broadcast-and-confirm state machine.

Every chunk walks through::

    SNAPSHOT -> BUILD -> BROADCAST -> SETTLE -> VALIDATE -> CONFIRMED
                  ^                                |
                  |                                v
                  +------------------------- RETRY_VALIDATE

A push acknowledgement does not prove that the actions executed, so a chunk is
only confirmed once the resources of its first account (the sentinel) differ
from what they were before the first push. The first unchanged read is retried
once against the same transaction after a longer wait; a second unchanged read
rebuilds and resends the whole transaction with a fresh expiration and fresh
reference block. Transactions are atomic, so one changed action certifies the
chunk.

Ledger errors raised while reading the sentinel or pushing are not handled
here: they abort the run before anything is written to the progress log.
"""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .abi import Asset
from .ledger import AccountResources, LedgerClient
from .progress import ProgressLedger
from .retry import RetryExhaustedError, RetryPolicy
from .signer import SignedTransaction, TransactionSigner
from .transaction import DelegationBuilder


logger = logging.getLogger(__name__)

SETTLE_WAIT = 1.5
REVALIDATE_WAIT = 3.5


class State(enum.Enum):
    SNAPSHOT = "snapshot"
    BUILD = "build"
    BROADCAST = "broadcast"
    SETTLE = "settle"
    VALIDATE = "validate"
    RETRY_VALIDATE = "retry_validate"
    CONFIRMED = "confirmed"


def _weights(resources: AccountResources) -> Tuple[int, int]:
    return resources.cpu_weight, resources.net_weight


@dataclass
class ChunkAttempt:
    """Mutable state carried between transitions for one chunk."""

    chunk: List[str]
    cpu: Asset
    net: Asset
    baseline: Optional[Tuple[int, int]] = None
    signed: Optional[SignedTransaction] = None
    builds: int = 0
    validations: int = 0
    transaction_ids: List[str] = field(default_factory=list)

    @property
    def sentinel(self) -> str:
        return self.chunk[0]


@dataclass(frozen=True)
class ChunkResult:
    """Outcome of one confirmed chunk.

    ``transaction_ids`` lists every push in order. Any of them may be the one
    that landed, since an earlier send can apply after a resend.
    """

    accounts: Tuple[str, ...]
    transaction_ids: Tuple[str, ...]
    builds: int

    @property
    def transaction_id(self) -> str:
        """Id of the most recent push."""
        return self.transaction_ids[-1]

    @property
    def resends(self) -> int:
        return self.builds - 1


@dataclass
class RunSummary:
    results: List[ChunkResult] = field(default_factory=list)

    @property
    def chunks(self) -> int:
        return len(self.results)

    @property
    def accounts(self) -> int:
        return sum(len(result.accounts) for result in self.results)

    @property
    def resends(self) -> int:
        return sum(result.resends for result in self.results)


class BroadcastConfirmEngine:
    """Get each chunk's delegation accepted and observably applied."""

    def __init__(
        self,
        ledger: LedgerClient,
        builder: DelegationBuilder,
        signer: TransactionSigner,
        progress: ProgressLedger,
        resend_retry: RetryPolicy = RetryPolicy(),
        settle_wait: float = SETTLE_WAIT,
        revalidate_wait: float = REVALIDATE_WAIT,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.ledger = ledger
        self.builder = builder
        self.signer = signer
        self.progress = progress
        self.resend_retry = resend_retry
        self.settle_wait = settle_wait
        self.revalidate_wait = revalidate_wait
        self.sleep = sleep
        self._transitions: Dict[State, Callable[[ChunkAttempt], State]] = {
            State.SNAPSHOT: self._snapshot,
            State.BUILD: self._build,
            State.BROADCAST: self._broadcast,
            State.SETTLE: self._settle,
            State.VALIDATE: self._validate,
            State.RETRY_VALIDATE: self._retry_validate,
        }

    def _snapshot(self, attempt: ChunkAttempt) -> State:
        attempt.baseline = _weights(self.ledger.get_account(attempt.sentinel))
        logger.debug("baseline for %s: cpu=%d net=%d", attempt.sentinel, *attempt.baseline)
        return State.BUILD

    def _build(self, attempt: ChunkAttempt) -> State:
        if self.resend_retry.exhausted(attempt.builds):
            raise RetryExhaustedError(
                f"chunk starting at {attempt.sentinel} not confirmed after {attempt.builds} sends"
            )
        delay = self.resend_retry.delay_for(attempt.builds) if attempt.builds else 0
        if delay:
            self.sleep(delay)
        attempt.builds += 1
        unsigned = self.builder.build(attempt.chunk, attempt.cpu, attempt.net)
        attempt.signed = self.signer.sign(unsigned, unsigned.reference.chain_id)
        return State.BROADCAST

    def _broadcast(self, attempt: ChunkAttempt) -> State:
        tx_id = self.ledger.push_transaction(attempt.signed)
        attempt.transaction_ids.append(tx_id)
        logger.info(
            "Transaction ID: %s, waiting %.1f seconds and validating...", tx_id, self.settle_wait
        )
        return State.SETTLE

    def _settle(self, attempt: ChunkAttempt) -> State:
        self.sleep(self.settle_wait)
        attempt.validations = 0
        return State.VALIDATE

    def _validate(self, attempt: ChunkAttempt) -> State:
        attempt.validations += 1
        logger.info("Validating...")
        current = _weights(self.ledger.get_account(attempt.sentinel))
        if current != attempt.baseline:
            return State.CONFIRMED
        logger.warning("Transaction not applied yet (resource weight of %s unchanged)", attempt.sentinel)
        if attempt.validations == 1:
            return State.RETRY_VALIDATE
        logger.warning("Could not validate transaction. Re-sending it.")
        return State.BUILD

    def _retry_validate(self, attempt: ChunkAttempt) -> State:
        logger.info("Retrying validation in %.1f seconds...", self.revalidate_wait)
        self.sleep(self.revalidate_wait)
        return State.VALIDATE

    def process(self, chunk: Sequence[str], cpu: Asset, net: Asset) -> ChunkResult:
        """Run one chunk to confirmation and record it in the progress log."""
        if not chunk:
            raise ValueError("chunk must not be empty")
        attempt = ChunkAttempt(chunk=list(chunk), cpu=cpu, net=net)
        state = State.SNAPSHOT
        while state is not State.CONFIRMED:
            state = self._transitions[state](attempt)
        self.progress.mark_done(attempt.chunk)
        logger.info("Transaction validated.")
        return ChunkResult(
            accounts=tuple(attempt.chunk),
            transaction_ids=tuple(attempt.transaction_ids),
            builds=attempt.builds,
        )

    def run(self, chunks: Sequence[Sequence[str]], cpu: Asset, net: Asset) -> RunSummary:
        summary = RunSummary()
        for index, chunk in enumerate(chunks):
            logger.info("Processing chunk #%d of %d (%d accounts)", index, len(chunks), len(chunk))
            summary.results.append(self.process(chunk, cpu, net))
        return summary
