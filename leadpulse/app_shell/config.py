import logging
import os
from pathlib import Path

from leadpulse.rules.models import Rules

logger = logging.getLogger(__name__)


class ConfigurationError(RuntimeError):
    """Startup configuration is unusable."""


def validate_ops_rules(rules: Rules, data_dir: Path) -> None:
    """
    Validate operational requirements before startup.
    Raises ConfigurationError on the first unmet requirement.
    """
    ops = rules.ops

    if ops.data_dir_required:
        try:
            data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(f"Data directory {data_dir} is not usable: {e}") from e
        if not os.access(data_dir, os.W_OK):
            raise ConfigurationError(f"Data directory {data_dir} is not writable")

    missing = [env_var for env_var in ops.required_env if env_var not in os.environ]
    if missing:
        raise ConfigurationError(
            f"Missing required environment variables: {', '.join(missing)}"
        )

    logger.info("Configuration validated (data dir: %s)", data_dir)


class Settings:
    """Runtime settings from the environment."""

    def __init__(self) -> None:
        self.base_dir = Path(os.getcwd())
        self.data_dir = Path(os.environ.get("LEADPULSE_DATA_DIR", "./data"))
        self.db_path = str(self.data_dir / "leadpulse.db")
        self.rules_path = Path(
            os.environ.get("LEADPULSE_RULES_PATH", str(self.base_dir / "rules.yaml"))
        )
        self.migrations_dir = Path(
            os.environ.get("LEADPULSE_MIGRATIONS_DIR", str(self.base_dir / "migrations"))
        )
        self.admin_token = os.environ.get("LEADPULSE_ADMIN_TOKEN") or None
        self.host = os.environ.get("LEADPULSE_HOST", "127.0.0.1")
        self.port = int(os.environ.get("LEADPULSE_PORT", "8000"))
        # X-Forwarded-For is honored only behind a proxy that overwrites it
        self.trust_forwarded_for = os.environ.get("LEADPULSE_TRUST_PROXY", "").lower() in (
            "1",
            "true",
            "yes",
        )
