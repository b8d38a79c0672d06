import pytest

from decimal import Decimal

from staker.abi import (
    Asset,
    EncodingError,
    encode_delegatebw,
    encode_name,
    encode_symbol,
    encode_transaction,
    encode_varuint32,
    format_units,
    name_to_int,
    to_units,
)


def test_encode_name_known_values():
    assert name_to_int("eosio") == 6138663577826885632
    assert encode_name("eosio").hex() == "0000000000ea3055"
    assert name_to_int("") == 0


def test_encode_name_rejects_invalid():
    with pytest.raises(EncodingError):
        encode_name("Bad_Name")
    with pytest.raises(EncodingError):
        encode_name("fourteenchars1")


def test_encode_varuint32():
    assert encode_varuint32(0) == b"\x00"
    assert encode_varuint32(127) == b"\x7f"
    assert encode_varuint32(128) == b"\x80\x01"
    assert encode_varuint32(300) == b"\xac\x02"
    with pytest.raises(EncodingError):
        encode_varuint32(2**32)


def test_encode_symbol():
    assert encode_symbol("WAX", 8) == b"\x08WAX\x00\x00\x00\x00"
    with pytest.raises(EncodingError):
        encode_symbol("TOOLONGSYM", 4)


def test_asset_string_and_pack():
    asset = Asset.from_string("123.45678900 WAX")
    assert asset == Asset(12345678900, "WAX", 8)
    assert str(asset) == "123.45678900 WAX"
    assert asset.pack() == (12345678900).to_bytes(8, "little") + encode_symbol("WAX", 8)
    with pytest.raises(EncodingError):
        Asset.from_string("garbage")


def test_units():
    assert to_units(Decimal("10.0"), 8) == 1_000_000_000
    assert to_units(Decimal("0.123456789"), 8) == 12_345_678
    assert format_units(333333333, 8) == "3.33333333"
    assert format_units(5, 0) == "5"


def test_delegatebw_layout():
    cpu = Asset(100, "WAX", 8)
    net = Asset(0, "WAX", 8)
    data = encode_delegatebw("alice", "bob", net, cpu)
    assert len(data) == 8 + 8 + 16 + 16 + 1
    assert data[:8] == encode_name("alice")
    assert data[8:16] == encode_name("bob")
    assert data[16:32] == net.pack()
    assert data[32:48] == cpu.pack()
    assert data[-1:] == b"\x00"


def test_encode_transaction_header():
    packed = encode_transaction(0x01020304, 7, 9, [b"ACTION"])
    assert packed[:4] == bytes([4, 3, 2, 1])
    assert packed[4:6] == b"\x07\x00"
    assert packed[6:10] == b"\x09\x00\x00\x00"
    # net words, cpu ms, delay, cfa count, action count
    assert packed[10:15] == b"\x00\x00\x00\x00\x01"
    assert packed[15:21] == b"ACTION"
    assert packed[-1:] == b"\x00"


def test_encode_transaction_rejects_bad_header():
    with pytest.raises(EncodingError):
        encode_transaction(-1, 0, 0, [])
