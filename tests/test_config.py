import logging
import os
from pathlib import Path

import pytest

from booking.selectors import SelectorTable
from engine.config import RunConfig, configure_logging, ensure_run_directories, load_config


def test_defaults_without_file_or_environment(tmp_path, monkeypatch):
    for key in list(os.environ):
        if key.startswith("BOOKING_"):
            monkeypatch.delenv(key)

    config = load_config(tmp_path / "missing.toml")

    assert config.action_timeout_ms == 10000
    assert config.per_strategy_timeout_ms == 5000
    assert config.settlement_poll_attempts == 5
    assert config.watchdog_seconds == 55.0
    assert config.listing_paths[0] == "/reservations"
    assert config.url("/login") == "https://partners.gokenko.com/login"


def test_environment_overrides_the_toml_table(tmp_path, monkeypatch):
    path = tmp_path / "config.toml"
    path.write_text(
        "\n".join(
            [
                "[booking]",
                'base_url = "https://staging.example.test/"',
                "settle_delay_ms = 100",
                'principals = ["Member A", "Member B"]',
                "",
                "[booking.selectors]",
                'settlement = ["button.pay", "text/Pay now"]',
            ]
        ),
        encoding="utf-8",
    )
    monkeypatch.setenv("BOOKING_SETTLE_DELAY_MS", "250")
    monkeypatch.setenv("BOOKING_HEADLESS", "false")

    config = load_config(path)

    assert config.base_url == "https://staging.example.test"
    assert config.settle_delay_ms == 250
    assert config.headless is False
    assert config.principals == ["Member A", "Member B"]
    table = SelectorTable().with_overrides(config.selectors)
    assert [s.describe() for s in table.settlement.strategies] == ["css(button.pay)", "text(Pay now)"]
    assert table.settlement.name == "charge"


def test_unknown_selector_override_is_rejected():
    with pytest.raises(KeyError):
        SelectorTable().with_overrides({"teleport": ["#x"]})


def test_run_directories_and_launch_config(tmp_path):
    config = RunConfig(log_root=tmp_path / "runs", headless=False)

    paths = ensure_run_directories("run-1", config)

    assert paths["base"] == tmp_path / "runs" / "run-1"
    assert paths["base"].is_dir()
    assert config.launch_config().headless is False
    assert config.launch_config(headless=True).headless is True


def test_configure_logging_adds_one_file_handler(tmp_path):
    log_file = tmp_path / "logs" / "booking.log"
    config = RunConfig(log_file=Path(log_file))
    root = logging.getLogger()
    before = list(root.handlers)
    try:
        configure_logging(config)
        configure_logging(config)
        added = [h for h in root.handlers if isinstance(h, logging.FileHandler) and h not in before]
        assert len(added) == 1
        assert log_file.parent.is_dir()
    finally:
        for handler in list(root.handlers):
            if handler not in before:
                root.removeHandler(handler)
                handler.close()


def test_selectors_from_the_environment_are_rejected_clearly(tmp_path, monkeypatch):
    monkeypatch.setenv("BOOKING_SELECTORS", "settlement=button.pay")

    with pytest.raises(ValueError, match="selectors must be a table"):
        load_config(tmp_path / "missing.toml")
