from decimal import Decimal
from pathlib import Path

import pytest

from staker.config import ConfigError, load_config, parse_config
from staker.tests.fakes import TEST_KEY


def _data(**overrides):
    section = {
        "pkey": TEST_KEY,
        "account": "stakebot.wam",
        "wax_node": "https://wax.example.com",
        "chunk_size": 20,
        "use_balance": 100.5,
    }
    section.update(overrides)
    return {"config": section}


def test_parse_minimal_config():
    config = parse_config(_data(), base_dir="/srv/staker")
    assert config.keys == (TEST_KEY,)
    assert config.use_balance == Decimal("100.5")
    assert config.mode == "cpu"
    assert config.symbol == "WAX"
    assert config.precision == 8
    assert config.accounts_file == Path("/srv/staker/accounts.txt")
    assert config.progress_file == Path("/srv/staker/done.txt")
    assert config.retry.settle_wait == 1.5
    assert config.retry.resend_policy.unbounded
    assert config.retry.reference_policy.delay == 0.005


def test_parse_key_list_and_retry_section():
    data = _data(pkey=[TEST_KEY, TEST_KEY], mode="split")
    data["retry"] = {"resend_max_attempts": 5, "resend_backoff": "exponential", "settle_wait": 2}
    config = parse_config(data)
    assert len(config.keys) == 2
    assert config.mode == "split"
    assert config.retry.resend_policy.max_attempts == 5
    assert config.retry.resend_policy.backoff == "exponential"
    assert config.retry.settle_wait == 2.0


@pytest.mark.parametrize(
    "overrides",
    [
        {"chunk_size": 0},
        {"use_balance": -1},
        {"mode": "ram"},
        {"account": "Bad Account"},
        {"wax_node": "wax.example.com"},
        {"pkey": []},
    ],
)
def test_invalid_values(overrides):
    with pytest.raises(ConfigError):
        parse_config(_data(**overrides))


def test_missing_key():
    data = _data()
    del data["config"]["account"]
    with pytest.raises(ConfigError, match="account"):
        parse_config(data)


def test_missing_table():
    with pytest.raises(ConfigError):
        parse_config({})


def test_load_config(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text(
        "[config]\n"
        f'pkey = "{TEST_KEY}"\n'
        'account = "stakebot.wam"\n'
        'wax_node = "https://wax.example.com"\n'
        "chunk_size = 3\n"
        "use_balance = 10.0\n"
        'progress_file = "state/done.txt"\n'
    )
    config = load_config(path)
    assert config.chunk_size == 3
    assert config.progress_file == tmp_path / "state" / "done.txt"


def test_load_config_errors(tmp_path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "missing.toml")
    bad = tmp_path / "bad.toml"
    bad.write_text("[config\n")
    with pytest.raises(ConfigError):
        load_config(bad)
