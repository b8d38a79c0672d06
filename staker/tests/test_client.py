from decimal import Decimal

import pytest

from staker.client import StakerClient, StakerError, per_account_amount, split_stake
from staker.config import RetrySettings, StakerConfig
from staker.tests.fakes import FakeLedger, SleepRecorder, TEST_KEY


ACCOUNTS = ["alice.wam", "bob.wam", "carol.wam", "dave.wam", "erin.wam"]


def _config(tmp_path, use_balance="10.0", chunk_size=2, mode="cpu"):
    return StakerConfig(
        keys=(TEST_KEY,),
        account="stakebot.wam",
        node_url="https://wax.example.com",
        chunk_size=chunk_size,
        use_balance=Decimal(use_balance),
        mode=mode,
        accounts_file=tmp_path / "accounts.txt",
        progress_file=tmp_path / "done.txt",
        retry=RetrySettings(),
    )


def _client(tmp_path, ledger, **kwargs):
    return StakerClient(_config(tmp_path, **kwargs), ledger=ledger, sleep=SleepRecorder())


def _write_accounts(tmp_path, accounts=ACCOUNTS):
    (tmp_path / "accounts.txt").write_text("\n".join(accounts) + "\n")


def test_per_account_amount_truncates():
    assert per_account_amount(1_000_000_000, 3) == 333_333_333
    for budget in (1, 7, 10**9 + 1):
        for count in range(1, 8):
            assert per_account_amount(budget, count) * count <= budget
    with pytest.raises(ValueError):
        per_account_amount(100, 0)


def test_split_stake_modes():
    cpu, net = split_stake(7, "cpu", "WAX", 8)
    assert (cpu.amount, net.amount) == (7, 0)
    cpu, net = split_stake(7, "net", "WAX", 8)
    assert (cpu.amount, net.amount) == (0, 7)
    cpu, net = split_stake(7, "split", "WAX", 8)
    assert (cpu.amount, net.amount) == (4, 3)


def test_plan_excludes_done_accounts(tmp_path):
    _write_accounts(tmp_path)
    (tmp_path / "done.txt").write_text("alice.wam\n")
    plan = _client(tmp_path, FakeLedger(ACCOUNTS)).plan()
    assert plan.pending == ACCOUNTS[1:]
    assert plan.chunks == [["bob.wam", "carol.wam"], ["dave.wam", "erin.wam"]]


def test_allocation_example(tmp_path):
    _write_accounts(tmp_path, ACCOUNTS[:3])
    client = _client(tmp_path, FakeLedger(ACCOUNTS))
    allocation = client.allocation(client.plan())
    assert str(allocation.cpu) == "3.33333333 WAX"
    assert allocation.net.amount == 0
    assert allocation.required == 1_000_000_000


def test_nothing_to_do_skips_ledger(tmp_path):
    _write_accounts(tmp_path)
    (tmp_path / "done.txt").write_text("\n".join(ACCOUNTS) + "\n")
    ledger = FakeLedger(ACCOUNTS)
    summary = _client(tmp_path, ledger).run()
    assert summary.chunks == 0
    assert ledger.balance_calls == 0
    assert ledger.account_reads == []


def test_empty_account_list(tmp_path):
    (tmp_path / "accounts.txt").write_text("\n\n")
    ledger = FakeLedger([])
    assert _client(tmp_path, ledger).run().chunks == 0
    assert ledger.balance_calls == 0


def test_insufficient_balance_sends_nothing(tmp_path):
    _write_accounts(tmp_path)
    ledger = FakeLedger(ACCOUNTS, balance=999_999_999)
    with pytest.raises(StakerError, match="Not enough WAX"):
        _client(tmp_path, ledger).run()
    assert ledger.pushed == []
    assert (tmp_path / "done.txt").read_text() == ""


def test_missing_account_list_is_fatal(tmp_path):
    with pytest.raises(StakerError):
        _client(tmp_path, FakeLedger([])).run()


def test_invalid_account_name_is_fatal(tmp_path):
    _write_accounts(tmp_path, ["alice.wam", "Not_Valid"])
    with pytest.raises(StakerError):
        _client(tmp_path, FakeLedger(["alice.wam"])).plan()


def test_full_run_then_resume_is_idempotent(tmp_path):
    _write_accounts(tmp_path)
    ledger = FakeLedger(ACCOUNTS, balance=10**10)
    summary = _client(tmp_path, ledger).run()
    assert summary.chunks == 3
    assert summary.accounts == 5
    assert len(ledger.pushed) == 3
    assert (tmp_path / "done.txt").read_text().splitlines() == ACCOUNTS

    again = _client(tmp_path, ledger).run()
    assert again.chunks == 0
    assert len(ledger.pushed) == 3


def test_ledger_failure_becomes_staker_error(tmp_path):
    _write_accounts(tmp_path)
    ledger = FakeLedger(ACCOUNTS, balance=10**10, push_error="tx expired")
    with pytest.raises(StakerError, match="tx expired"):
        _client(tmp_path, ledger).run()
    assert (tmp_path / "done.txt").read_text() == ""


def test_dry_run_does_not_push(tmp_path):
    _write_accounts(tmp_path)
    ledger = FakeLedger(ACCOUNTS, balance=10**10)
    _client(tmp_path, ledger).run(dry_run=True)
    assert ledger.balance_calls == 1
    assert ledger.pushed == []


def test_budget_too_small(tmp_path):
    _write_accounts(tmp_path)
    with pytest.raises(StakerError, match="too small"):
        _client(tmp_path, FakeLedger(ACCOUNTS), use_balance="0.00000004").run()


def test_balance_must_cover_full_budget(tmp_path):
    # 3 x 3.33333333 fits in 9.99999999, the 10 WAX budget does not
    _write_accounts(tmp_path, ACCOUNTS[:3])
    ledger = FakeLedger(ACCOUNTS, balance=999_999_999)
    with pytest.raises(StakerError, match="Not enough WAX"):
        _client(tmp_path, ledger).run()
    assert ledger.pushed == []
    assert (tmp_path / "done.txt").read_text() == ""


def test_resumed_run_needs_only_remaining_share(tmp_path):
    _write_accounts(tmp_path)
    (tmp_path / "done.txt").write_text("alice.wam\nbob.wam\nstranger.wam\n")
    client = _client(tmp_path, FakeLedger(ACCOUNTS))
    allocation = client.allocation(client.plan())
    assert allocation.per_account == 200_000_000
    assert allocation.required == 1_000_000_000 - 2 * 200_000_000

    ledger = FakeLedger(ACCOUNTS, balance=600_000_000)
    summary = _client(tmp_path, ledger).run()
    assert summary.accounts == 3


def test_encoding_failure_is_fatal(tmp_path):
    # 10^12 WAX at 8 decimals overflows the int64 asset amount
    _write_accounts(tmp_path, ACCOUNTS[:1])
    ledger = FakeLedger(ACCOUNTS, balance=10**21)
    with pytest.raises(StakerError, match="int64"):
        _client(tmp_path, ledger, use_balance="1000000000000").run()
    assert ledger.pushed == []
    assert (tmp_path / "done.txt").read_text() == ""


def test_undecodable_account_list_is_fatal(tmp_path):
    (tmp_path / "accounts.txt").write_bytes(b"alice.wam\n\xff\xfe\xfa\n")
    with pytest.raises(StakerError):
        _client(tmp_path, FakeLedger(ACCOUNTS)).plan()


def test_undecodable_progress_log_is_fatal(tmp_path):
    _write_accounts(tmp_path)
    (tmp_path / "done.txt").write_bytes(b"\xff\xfe\xfa\n")
    with pytest.raises(StakerError):
        _client(tmp_path, FakeLedger(ACCOUNTS)).plan()
