"""Delegation transaction builder."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Sequence, Tuple

from . import abi
from .abi import Asset
from .ledger import ChainReference, LedgerClient, LedgerError
from .retry import RetryPolicy, retry_call


logger = logging.getLogger(__name__)

SYSTEM_CONTRACT = "eosio"
DELEGATE_ACTION = "delegatebw"
DEFAULT_PERMISSION = "active"
EXPIRATION_SECONDS = 55 * 60

# Chain metadata is assumed to come back eventually: retry forever, 5ms apart.
REFERENCE_RETRY = RetryPolicy(max_attempts=None, delay=0.005)


@dataclass(frozen=True)
class DelegationAction:
    sender: str
    receiver: str
    cpu: Asset
    net: Asset
    transfer: bool = False
    permission: str = DEFAULT_PERMISSION

    def pack(self) -> bytes:
        data = abi.encode_delegatebw(self.sender, self.receiver, self.net, self.cpu, self.transfer)
        return abi.encode_action(
            SYSTEM_CONTRACT,
            DELEGATE_ACTION,
            [(self.sender, self.permission)],
            data,
        )


@dataclass(frozen=True)
class UnsignedTransaction:
    actions: Tuple[DelegationAction, ...]
    expiration: int
    reference: ChainReference = field(repr=False)

    @property
    def receivers(self) -> List[str]:
        return [action.receiver for action in self.actions]

    def pack(self) -> bytes:
        return abi.encode_transaction(
            self.expiration,
            self.reference.ref_block_num,
            self.reference.ref_block_prefix,
            (action.pack() for action in self.actions),
        )


def build_delegation_actions(
    custodian: str,
    chunk: Sequence[str],
    cpu: Asset,
    net: Asset,
) -> Tuple[DelegationAction, ...]:
    """One ``delegatebw`` per beneficiary, in chunk order."""
    if not chunk:
        raise ValueError("chunk must not be empty")
    if cpu.symbol != net.symbol or cpu.precision != net.precision:
        raise ValueError(f"cpu and net stake must share a symbol: {cpu} / {net}")
    return tuple(
        DelegationAction(sender=custodian, receiver=account, cpu=cpu, net=net)
        for account in chunk
    )


class DelegationBuilder:
    """Builds fresh delegation transactions against the current chain head."""

    def __init__(
        self,
        ledger: LedgerClient,
        custodian: str,
        reference_retry: RetryPolicy = REFERENCE_RETRY,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.ledger = ledger
        self.custodian = custodian
        self.reference_retry = reference_retry
        self.clock = clock
        self.sleep = sleep

    def fetch_reference(self) -> ChainReference:
        return retry_call(
            self.ledger.get_chain_reference,
            self.reference_retry,
            retry_on=(LedgerError,),
            sleep=self.sleep,
            what="fetching chain reference",
        )

    def build(self, chunk: Sequence[str], cpu: Asset, net: Asset) -> UnsignedTransaction:
        actions = build_delegation_actions(self.custodian, chunk, cpu, net)
        reference = self.fetch_reference()
        expiration = int(self.clock()) + EXPIRATION_SECONDS
        logger.debug(
            "built transaction with %d actions, ref block %d, expiring at %d",
            len(actions),
            reference.ref_block_num,
            expiration,
        )
        return UnsignedTransaction(actions=actions, expiration=expiration, reference=reference)
