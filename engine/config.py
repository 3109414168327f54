"""Configuration loader for the booking runtime."""

from __future__ import annotations

import logging
import os
import sys
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple


DEFAULTS: Dict[str, Any] = {
    "base_url": "https://partners.gokenko.com",
    "login_path": "/login",
    "listing_paths": "/reservations,/bookings,/appointments,/schedule,/dashboard/reservations",
    "action_timeout_ms": 10000,
    "per_strategy_timeout_ms": 5000,
    "navigation_timeout_ms": 30000,
    "settle_delay_ms": 500,
    "settlement_poll_attempts": 5,
    "watchdog_seconds": 55.0,
    "telemetry_window": 20,
    "log_root": "runs",
    "snapshot_dir": "/tmp",
    "log_file": "",
    "principals": "",
    "headless": True,
}

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
)

DEFAULT_EXTRA_HEADERS: Dict[str, str] = {
    "Accept-Language": "en-US,en;q=0.9",
    "Upgrade-Insecure-Requests": "1",
    "sec-ch-ua": '"Google Chrome";v="131", "Chromium";v="131", "Not_A Brand";v="24"',
    "sec-ch-ua-mobile": "?0",
    "sec-ch-ua-platform": '"macOS"',
}

DEFAULT_BROWSER_ARGS: Tuple[str, ...] = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--no-first-run",
    "--no-default-browser-check",
    "--disable-extensions",
    "--disable-notifications",
    "--mute-audio",
    "--disable-blink-features=AutomationControlled",
)

DEFAULT_NAVIGATOR_OVERRIDES: Dict[str, Any] = {
    "platform": "MacIntel",
    "hardwareConcurrency": 8,
    "deviceMemory": 8,
    "webdriver": None,
}


def _split_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if str(item).strip()]
    return [part.strip() for part in str(value).split(",") if part.strip()]


def _selector_overrides(value: Any) -> Dict[str, List[str]]:
    if not value:
        return {}
    if not isinstance(value, Mapping):
        raise ValueError(
            "selectors must be a table of selector name to strategies, "
            "e.g. [booking.selectors] in config.toml; got a "
            f"{type(value).__name__}"
        )
    return {str(k): _split_list(v) for k, v in value.items()}


@dataclass(slots=True)
class LaunchConfig:
    """Browser launch settings; opaque to the workflow logic."""

    headless: bool = True
    viewport: Dict[str, int] = field(default_factory=lambda: {"width": 1920, "height": 1080})
    user_agent: str = DEFAULT_USER_AGENT
    extra_http_headers: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_EXTRA_HEADERS))
    args: Tuple[str, ...] = DEFAULT_BROWSER_ARGS
    navigator_overrides: Dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_NAVIGATOR_OVERRIDES))
    launch_timeout_ms: int = 120000


@dataclass(slots=True)
class RunConfig:
    base_url: str = DEFAULTS["base_url"]
    login_path: str = DEFAULTS["login_path"]
    listing_paths: List[str] = field(default_factory=lambda: _split_list(DEFAULTS["listing_paths"]))
    action_timeout_ms: int = DEFAULTS["action_timeout_ms"]
    per_strategy_timeout_ms: int = DEFAULTS["per_strategy_timeout_ms"]
    navigation_timeout_ms: int = DEFAULTS["navigation_timeout_ms"]
    settle_delay_ms: int = DEFAULTS["settle_delay_ms"]
    settlement_poll_attempts: int = DEFAULTS["settlement_poll_attempts"]
    watchdog_seconds: float = DEFAULTS["watchdog_seconds"]
    telemetry_window: int = DEFAULTS["telemetry_window"]
    log_root: Path = field(default_factory=lambda: Path(DEFAULTS["log_root"]))
    snapshot_dir: Path = field(default_factory=lambda: Path(DEFAULTS["snapshot_dir"]))
    log_file: Optional[Path] = None
    principals: List[str] = field(default_factory=list)
    headless: bool = DEFAULTS["headless"]
    selectors: Dict[str, List[str]] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, mapping: Dict[str, Any]) -> "RunConfig":
        data = dict(DEFAULTS)
        data.update(mapping)
        log_file = str(data.get("log_file") or "").strip()
        return cls(
            base_url=str(data["base_url"]).rstrip("/"),
            login_path=str(data["login_path"]),
            listing_paths=_split_list(data["listing_paths"]),
            action_timeout_ms=int(data["action_timeout_ms"]),
            per_strategy_timeout_ms=int(data["per_strategy_timeout_ms"]),
            navigation_timeout_ms=int(data["navigation_timeout_ms"]),
            settle_delay_ms=int(data["settle_delay_ms"]),
            settlement_poll_attempts=int(data["settlement_poll_attempts"]),
            watchdog_seconds=float(data["watchdog_seconds"]),
            telemetry_window=int(data["telemetry_window"]),
            log_root=Path(data["log_root"]),
            snapshot_dir=Path(data["snapshot_dir"]),
            log_file=Path(log_file) if log_file else None,
            principals=_split_list(data["principals"]),
            headless=bool(str(data["headless"]).lower() in {"true", "1", "yes"}),
            selectors=_selector_overrides(data.get("selectors")),
        )

    def url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def launch_config(self, *, headless: Optional[bool] = None) -> LaunchConfig:
        return LaunchConfig(headless=self.headless if headless is None else headless)


def _load_toml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("rb") as fh:
        return tomllib.load(fh)


def load_config(config_path: Path | None = None) -> RunConfig:
    """Load configuration from environment, optional TOML file, and defaults."""

    env_map: Dict[str, Any] = {}
    for key, value in os.environ.items():
        if key.startswith("BOOKING_"):
            env_map[key[8:].lower()] = value

    file_map: Dict[str, Any] = {}
    path = config_path or Path("config.toml")
    if path.exists():
        file_map = _load_toml(path).get("booking", {})

    merged = {**file_map, **env_map}
    return RunConfig.from_mapping(merged)


def ensure_run_directories(run_id: str, config: RunConfig) -> Dict[str, Path]:
    base = config.log_root / run_id
    base.mkdir(parents=True, exist_ok=True)
    return {"base": base}


def configure_logging(config: RunConfig, *, level: int = logging.INFO) -> None:
    """Install the console handler and, if configured, the plain-text log file."""

    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
            stream=sys.stdout,
        )
    root.setLevel(level)
    if config.log_file is None:
        return
    target = str(config.log_file.resolve())
    for handler in root.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == target:
            return
    try:
        config.log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(target, encoding="utf-8")
    except OSError as exc:
        root.warning("Could not open log file %s: %s", target, exc)
        return
    file_handler.setFormatter(logging.Formatter("[%(asctime)s] %(message)s"))
    root.addHandler(file_handler)
