"""TOML configuration loader for receiptscan."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomli as tomllib
    except ImportError:
        tomllib = None  # type: ignore[assignment]

DEFAULT_DB_PATH = "~/.config/receiptscan/receipts.db"


@dataclass
class GeminiVisionConfig:
    api_key: str = ""
    model: str = "gemini-2.5-flash"


@dataclass
class ClaudeVisionConfig:
    api_key: str = ""
    model: str = "claude-sonnet-4-5-20250929"


@dataclass
class VisionConfig:
    backend: str = "gemini"
    gemini: GeminiVisionConfig = field(default_factory=GeminiVisionConfig)
    claude: ClaudeVisionConfig = field(default_factory=ClaudeVisionConfig)


@dataclass
class ScannerConfig:
    integrity_threshold: float = 80.0


@dataclass
class LocaleConfig:
    region: str = "en-US"
    language: str = "en"


@dataclass
class DatabaseConfig:
    path: str = DEFAULT_DB_PATH


@dataclass
class DashboardConfig:
    window_days: int = 7
    date_mode: str = "transaction"
    user_id: str = "local"


@dataclass
class ScanConfig:
    vision: VisionConfig = field(default_factory=VisionConfig)
    scanner: ScannerConfig = field(default_factory=ScannerConfig)
    locale: LocaleConfig = field(default_factory=LocaleConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    dashboard: DashboardConfig = field(default_factory=DashboardConfig)


def load_config(path: str | Path | None = None) -> ScanConfig:
    """Load configuration from a TOML file.

    Falls back to defaults if no path is given or the file doesn't exist.
    API keys can be overridden via environment variables.
    """
    raw: dict = {}

    if path is not None:
        p = Path(path).expanduser()
        if p.exists():
            if tomllib is None:
                raise ImportError(
                    "tomli is required on Python < 3.11: pip install tomli"
                )
            with open(p, "rb") as f:
                raw = tomllib.load(f)

    vis = raw.get("vision", {})
    scn = raw.get("scanner", {})
    loc = raw.get("locale", {})
    dbs = raw.get("database", {})
    dsh = raw.get("dashboard", {})

    gemini_cfg = vis.get("gemini", {})
    claude_cfg = vis.get("claude", {})

    # Resolve API keys: config file → environment variable
    gemini_api_key = gemini_cfg.get("api_key", "") or os.environ.get(
        "GEMINI_API_KEY", ""
    )
    claude_api_key = claude_cfg.get("api_key", "") or os.environ.get(
        "ANTHROPIC_API_KEY", ""
    )

    date_mode = dsh.get("date_mode", "transaction")
    if date_mode not in ("transaction", "created"):
        raise ValueError(
            f"Invalid dashboard.date_mode: {date_mode!r} (transaction / created)"
        )

    return ScanConfig(
        vision=VisionConfig(
            backend=vis.get("backend", "gemini"),
            gemini=GeminiVisionConfig(
                api_key=gemini_api_key,
                model=gemini_cfg.get("model", "gemini-2.5-flash"),
            ),
            claude=ClaudeVisionConfig(
                api_key=claude_api_key,
                model=claude_cfg.get("model", "claude-sonnet-4-5-20250929"),
            ),
        ),
        scanner=ScannerConfig(
            integrity_threshold=float(scn.get("integrity_threshold", 80.0)),
        ),
        locale=LocaleConfig(
            region=loc.get("region", "en-US"),
            language=loc.get("language", "en"),
        ),
        database=DatabaseConfig(
            path=dbs.get("path", DEFAULT_DB_PATH),
        ),
        dashboard=DashboardConfig(
            window_days=dsh.get("window_days", 7),
            date_mode=date_mode,
            user_id=dsh.get("user_id", "local"),
        ),
    )
