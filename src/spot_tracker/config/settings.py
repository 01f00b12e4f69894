import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

DEFAULT_DATA_DIR = Path(__file__).resolve().parents[3] / "data"

_API_KEY_ENV = {
    "METALS_DEV": "METALS_DEV_API_KEY",
    "METALS_API": "METALS_API_KEY",
    "METAL_PRICE_API": "METAL_PRICE_API_KEY",
    "CUSTOM": "CUSTOM_API_KEY",
}


class Config:
    """Loads configuration for the spot price tracker."""

    def __init__(self) -> None:
        load_dotenv()

        self.provider: str = os.getenv("SPOT_PROVIDER", "METALS_DEV").strip().upper() or "METALS_DEV"
        self.api_keys = {kind: self._get_optional_env(env) for kind, env in _API_KEY_ENV.items()}

        self.custom_base_url: str = os.getenv("CUSTOM_PROVIDER_BASE_URL", "").strip()
        self.custom_endpoint: str = os.getenv("CUSTOM_PROVIDER_ENDPOINT", "").strip()

        self.refresh_interval_seconds: int = self._get_int("SPOT_REFRESH_INTERVAL", 24 * 60 * 60, minimum=0)
        self.poll_interval_seconds: int = self._get_int("SPOT_POLL_INTERVAL", 60 * 60, minimum=1)
        self.history_limit: int = self._get_int("SPOT_HISTORY_LIMIT", 500, minimum=1)
        try:
            self.request_timeout: float = max(1.0, float(os.getenv("SPOT_REQUEST_TIMEOUT", "10")))
        except ValueError:
            self.request_timeout = 10.0

        data_dir = os.getenv("SPOT_DATA_DIR")
        self.data_dir: Path = Path(data_dir).expanduser() if data_dir else DEFAULT_DATA_DIR
        self.log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()

    def api_key_for(self, provider: str) -> Optional[str]:
        return self.api_keys.get(provider.upper())

    def _get_optional_env(self, var_name: str) -> Optional[str]:
        return os.getenv(var_name) or None

    def _get_int(self, var_name: str, default: int, *, minimum: int) -> int:
        try:
            return max(minimum, int(os.getenv(var_name, str(default))))
        except ValueError:
            return default


config = Config()
