"""Binary encoding of EOSIO transactions for ``eosio::delegatebw``.

Only the subset of the chain's serialization needed to stake resources is
implemented:

  name    -> uint64, 5 bits per character (13th character gets 4 bits)
  symbol  -> uint8 precision + 7 byte upper-case code, zero padded
  asset   -> int64 amount + symbol
  vectors -> varuint32 length prefix + items

All integers are little-endian.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal, InvalidOperation
from typing import Iterable, Sequence, Tuple


NAME_CHARS = ".12345abcdefghijklmnopqrstuvwxyz"
MAX_NAME_LENGTH = 13
MAX_VARUINT32 = 2**32 - 1
INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


class EncodingError(ValueError):
    """Raised when a value cannot be serialized."""


@dataclass(frozen=True)
class Asset:
    """A token quantity in integer units at a fixed precision."""

    amount: int
    symbol: str
    precision: int

    def __str__(self) -> str:
        return f"{format_units(self.amount, self.precision)} {self.symbol}"

    @classmethod
    def from_string(cls, text: str) -> "Asset":
        """Parse ``"1.00000000 WAX"``. Precision is taken from the decimals."""
        try:
            quantity, symbol = text.strip().split(" ")
            precision = len(quantity.split(".", 1)[1]) if "." in quantity else 0
            amount = int(Decimal(quantity).scaleb(precision))
        except (ValueError, InvalidOperation) as exc:
            raise EncodingError(f"invalid asset string: {text!r}") from exc
        return cls(amount=amount, symbol=symbol, precision=precision)

    def pack(self) -> bytes:
        if not INT64_MIN <= self.amount <= INT64_MAX:
            raise EncodingError(f"asset amount out of int64 range: {self.amount}")
        return struct.pack("<q", self.amount) + encode_symbol(self.symbol, self.precision)


def to_units(value: Decimal, precision: int) -> int:
    """Scale a decimal quantity to integer units, truncating toward zero."""
    scaled = Decimal(value).scaleb(precision)
    return int(scaled.to_integral_value(rounding=ROUND_DOWN))


def format_units(amount: int, precision: int) -> str:
    sign = "-" if amount < 0 else ""
    whole, frac = divmod(abs(amount), 10**precision)
    if precision == 0:
        return f"{sign}{whole}"
    return f"{sign}{whole}.{frac:0{precision}d}"


def encode_varuint32(value: int) -> bytes:
    """Encode an unsigned integer as LEB128, limited to 32 bits."""
    if value < 0 or value > MAX_VARUINT32:
        raise EncodingError(f"varuint32 out of range: {value}")
    out = bytearray()
    while True:
        to_write = value & 0x7F
        value >>= 7
        if value:
            out.append(to_write | 0x80)
        else:
            out.append(to_write)
            break
    return bytes(out)


def _char_value(char: str, name: str) -> int:
    index = NAME_CHARS.find(char)
    if index < 0:
        raise EncodingError(f"invalid character {char!r} in name {name!r}")
    return index


def name_to_int(name: str) -> int:
    if not isinstance(name, str) or len(name) > MAX_NAME_LENGTH:
        raise EncodingError(f"invalid name: {name!r}")
    value = 0
    for i in range(MAX_NAME_LENGTH):
        char = _char_value(name[i], name) if i < len(name) else 0
        if i < MAX_NAME_LENGTH - 1:
            value |= (char & 0x1F) << (64 - 5 * (i + 1))
        else:
            if char > 0x0F:
                raise EncodingError(f"invalid 13th character in name {name!r}")
            value |= char
    return value


def encode_name(name: str) -> bytes:
    return struct.pack("<Q", name_to_int(name))


def encode_symbol(symbol: str, precision: int) -> bytes:
    if not 0 <= precision <= 255:
        raise EncodingError(f"invalid symbol precision: {precision}")
    if not symbol or len(symbol) > 7 or not symbol.isascii() or not symbol.isupper():
        raise EncodingError(f"invalid symbol code: {symbol!r}")
    return bytes([precision]) + symbol.encode("ascii").ljust(7, b"\x00")


def encode_delegatebw(
    sender: str,
    receiver: str,
    net: Asset,
    cpu: Asset,
    transfer: bool = False,
) -> bytes:
    """Encode ``eosio::delegatebw`` action data."""
    return (
        encode_name(sender)
        + encode_name(receiver)
        + net.pack()
        + cpu.pack()
        + (b"\x01" if transfer else b"\x00")
    )


def encode_action(
    account: str,
    name: str,
    authorization: Sequence[Tuple[str, str]],
    data: bytes,
) -> bytes:
    payload = bytearray()
    payload += encode_name(account)
    payload += encode_name(name)
    payload += encode_varuint32(len(authorization))
    for actor, permission in authorization:
        payload += encode_name(actor)
        payload += encode_name(permission)
    payload += encode_varuint32(len(data))
    payload += data
    return bytes(payload)


def encode_transaction(
    expiration: int,
    ref_block_num: int,
    ref_block_prefix: int,
    actions: Iterable[bytes],
) -> bytes:
    """Encode a transaction header, no context free actions and no extensions."""
    actions = list(actions)
    try:
        header = struct.pack("<IHI", expiration, ref_block_num, ref_block_prefix)
    except struct.error as exc:
        raise EncodingError(f"invalid transaction header: {exc}") from exc
    payload = bytearray(header)
    payload += encode_varuint32(0)  # max_net_usage_words
    payload += b"\x00"  # max_cpu_usage_ms
    payload += encode_varuint32(0)  # delay_sec
    payload += encode_varuint32(0)  # context_free_actions
    payload += encode_varuint32(len(actions))
    for action in actions:
        payload += action
    payload += encode_varuint32(0)  # transaction_extensions
    return bytes(payload)
