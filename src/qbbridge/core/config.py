"""Configuration for the qbbridge server.

Settings come from environment variables with defaults, read once into a
BridgeConfig instance that is passed to the app factory and the CLI.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    value = env.get(key)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


@dataclass
class BridgeConfig:
    """Configuration for the Web Connector bridge.

    Attributes:
        db_path: Path to the SQLite database file.
        log_path: Path to the server log file.
        qbwc_password: Shared secret every Web Connector must present.
        api_key: Key required by the sync HTTP API (None disables the check).
        auto_queue_default_pulls: Queue a baseline pull when an agent
            authenticates and nothing is pending.
        default_pull_lookback_days: Modified-date window of the baseline pull.
        server_version: Value returned by serverVersion.
        public_url: Externally reachable base URL (used in QWC and WSDL).
        qwc_run_every_minutes: Scheduler interval written into QWC files.
    """

    db_path: Path = field(default_factory=lambda: Path("qbbridge.db"))
    log_path: Path = field(default_factory=lambda: Path("qbbridge-server.log"))
    qbwc_password: str | None = None
    api_key: str | None = None
    auto_queue_default_pulls: bool = True
    default_pull_lookback_days: int = 30
    server_version: str = "1.0.0"
    public_url: str | None = None
    qwc_run_every_minutes: int = 60

    def __post_init__(self) -> None:
        """Normalize paths and URL."""
        self.db_path = Path(self.db_path)
        self.log_path = Path(self.log_path)
        if self.public_url:
            self.public_url = self.public_url.rstrip("/")

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> BridgeConfig:
        """Build configuration from environment variables.

        Args:
            env: Mapping to read from (defaults to os.environ).

        Returns:
            Populated BridgeConfig.
        """
        env = os.environ if env is None else env
        return cls(
            db_path=Path(env.get("QBBRIDGE_DB_PATH", "qbbridge.db")),
            log_path=Path(env.get("QBBRIDGE_LOG_PATH", "qbbridge-server.log")),
            qbwc_password=env.get("QBBRIDGE_QBWC_PASSWORD") or None,
            api_key=env.get("QBBRIDGE_API_KEY") or None,
            auto_queue_default_pulls=_env_bool(env, "QBBRIDGE_AUTO_QUEUE", True),
            default_pull_lookback_days=int(env.get("QBBRIDGE_DEFAULT_LOOKBACK_DAYS", "30")),
            server_version=env.get("QBBRIDGE_SERVER_VERSION", "1.0.0"),
            public_url=env.get("QBBRIDGE_PUBLIC_URL") or None,
            qwc_run_every_minutes=int(env.get("QBBRIDGE_QWC_RUN_EVERY_MINUTES", "60")),
        )

    @property
    def is_secure(self) -> bool:
        """Check if the public URL uses HTTPS.

        The Web Connector refuses plain HTTP except for localhost.
        """
        return bool(self.public_url and self.public_url.startswith("https://"))
