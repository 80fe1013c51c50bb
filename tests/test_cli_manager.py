import pytest
from eth_utils import to_checksum_address

from paymaster_monitor.cli_manager import parse_args

PAYMASTER = "0xbdd6eb5c9a89f21b559f65c6b2bbec265ce54c82"
OTHER_PAYMASTER = "0x44d6f8362c144a1217f24a11be35f2c418b6cb20"


@pytest.fixture(autouse=True)
def clear_env(monkeypatch):
    for env_var in [
        "PAYMASTER_MONITOR_TRANSACTION_FILE",
        "PAYMASTER_MONITOR_MONITORED_PAYMASTERS",
        "DISCORD_PAYMASTER_CHANNEL_WEBHOOK",
        "PAYMASTER_MONITOR_STORAGE_DIR",
        "PAYMASTER_MONITOR_NOTIFICATION_RETRY_ATTEMPTS",
        "PAYMASTER_MONITOR_METRICS",
        "PAYMASTER_MONITOR_METRICS_HOST",
        "PAYMASTER_MONITOR_METRICS_PORT",
    ]:
        monkeypatch.delenv(env_var, raising=False)


def test_defaults():
    init_data = parse_args(["--transaction_file", "tx.json"])

    assert init_data.transaction_file == "tx.json"
    assert init_data.monitored_paymasters == []
    assert init_data.discord_webhook_url is None
    assert init_data.storage_dir == "storage"
    assert init_data.notification_retry_attempts == 1
    assert init_data.is_metrics is False
    assert init_data.metrics_host == "localhost"
    assert init_data.metrics_port == 8000


def test_monitored_paymasters_are_normalized_and_deduplicated():
    init_data = parse_args([
        "--transaction_file", "tx.json",
        "--monitored_paymasters",
        PAYMASTER, to_checksum_address(PAYMASTER), OTHER_PAYMASTER,
    ])
    assert init_data.monitored_paymasters == [
        to_checksum_address(PAYMASTER), to_checksum_address(OTHER_PAYMASTER)]


def test_environment_defaults(monkeypatch):
    monkeypatch.setenv("PAYMASTER_MONITOR_TRANSACTION_FILE", "-")
    monkeypatch.setenv(
        "PAYMASTER_MONITOR_MONITORED_PAYMASTERS",
        f"{PAYMASTER}, {OTHER_PAYMASTER}")
    monkeypatch.setenv(
        "DISCORD_PAYMASTER_CHANNEL_WEBHOOK", "https://discord.test/webhook")
    monkeypatch.setenv("PAYMASTER_MONITOR_NOTIFICATION_RETRY_ATTEMPTS", "3")
    monkeypatch.setenv("PAYMASTER_MONITOR_METRICS", "true")
    monkeypatch.setenv("PAYMASTER_MONITOR_METRICS_PORT", "9100")

    init_data = parse_args([])

    assert init_data.transaction_file == "-"
    assert init_data.monitored_paymasters == [
        to_checksum_address(PAYMASTER), to_checksum_address(OTHER_PAYMASTER)]
    assert init_data.discord_webhook_url == "https://discord.test/webhook"
    assert init_data.notification_retry_attempts == 3
    assert init_data.is_metrics is True
    assert init_data.metrics_port == 9100


def test_flags_override_environment(monkeypatch):
    monkeypatch.setenv("PAYMASTER_MONITOR_STORAGE_DIR", "/var/lib/monitor")
    init_data = parse_args([
        "--transaction_file", "tx.json", "--storage_dir", "buckets"])
    assert init_data.storage_dir == "buckets"


def test_missing_transaction_file():
    with pytest.raises(SystemExit):
        parse_args([])


def test_invalid_paymaster_flag():
    with pytest.raises(SystemExit):
        parse_args([
            "--transaction_file", "tx.json",
            "--monitored_paymasters", "0x1234",
        ])


def test_invalid_paymaster_environment(monkeypatch):
    monkeypatch.setenv("PAYMASTER_MONITOR_MONITORED_PAYMASTERS", "0x1234")
    with pytest.raises(SystemExit):
        parse_args(["--transaction_file", "tx.json"])


def test_invalid_retry_attempts():
    with pytest.raises(SystemExit):
        parse_args([
            "--transaction_file", "tx.json",
            "--notification_retry_attempts", "0",
        ])


@pytest.mark.parametrize(
    "metrics_args, is_metrics",
    [
        (["--metrics"], True),
        (["--metrics", "true"], True),
        (["--metrics", "false"], False),
        (["--metrics", "False"], False),
    ],
)
def test_metrics_flag(metrics_args, is_metrics):
    init_data = parse_args(["--transaction_file", "tx.json", *metrics_args])
    assert init_data.is_metrics is is_metrics
