"""Pytest configuration ensuring local packages are importable."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

_TESTS = Path(__file__).resolve().parent
_ROOT = _TESTS.parent
for _path in (_ROOT, _TESTS):
    if str(_path) not in sys.path:
        sys.path.insert(0, str(_path))

from engine.config import RunConfig  # noqa: E402


@pytest.fixture
def run_config(tmp_path: Path) -> RunConfig:
    """Fast timeouts and no settling delay, writing under ``tmp_path``."""

    return RunConfig(
        base_url="https://partners.example.test",
        listing_paths=["/reservations"],
        action_timeout_ms=300,
        per_strategy_timeout_ms=100,
        navigation_timeout_ms=1_000,
        settle_delay_ms=0,
        settlement_poll_attempts=2,
        watchdog_seconds=5.0,
        log_root=tmp_path / "runs",
        snapshot_dir=tmp_path / "snapshots",
        principals=["Fitpass One", "Fitpass Two"],
    )
