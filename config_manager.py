"""Global (non-secret) preferences for torrent-control.

Goals:
- Keep preferences in the persistent store under the ``options`` key, the same
  record older releases used for plaintext server lists.
- Fill in missing keys on load so callers can rely on every default.
- Never write server credentials here; those belong to the vault.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from retry import RetryPolicy
from storage import JsonFileStore, KeyValueStore

OPTIONS_KEY = "options"

DEFAULT_PREFERENCES: Dict[str, Any] = {
    "poll_interval": 5,  # seconds
    "request_timeout": 30,  # seconds
    "retry_max": 3,
    "retry_base_delay": 0.5,  # seconds
    "retry_max_delay": 5.0,  # seconds
    "add_paused": False,
    "default_label": "",
    "max_poll_workers": 4,
    "log_level": "INFO",
}


class ConfigManager:
    def __init__(self, store: Optional[KeyValueStore] = None) -> None:
        self.store = store if store is not None else JsonFileStore()
        self.config: Dict[str, Any] = self.load_config()

    def _normalize(self, cfg: Any) -> Dict[str, Any]:
        if not isinstance(cfg, dict):
            cfg = {}
        for k, v in DEFAULT_PREFERENCES.items():
            cfg.setdefault(k, v)
        return cfg

    def load_config(self) -> Dict[str, Any]:
        return self._normalize(self.store.get(OPTIONS_KEY))

    def save_config(self) -> None:
        # Re-read so a concurrent legacy migration of "servers" is not undone.
        current = self.store.get(OPTIONS_KEY)
        if isinstance(current, dict) and "servers" in current:
            self.config["servers"] = current["servers"]
        self.store.set(OPTIONS_KEY, self.config)

    def get_preferences(self) -> Dict[str, Any]:
        return {k: self.config.get(k, v) for k, v in DEFAULT_PREFERENCES.items()}

    def set_preferences(self, prefs: Dict[str, Any]) -> None:
        for k in DEFAULT_PREFERENCES:
            if k in prefs:
                self.config[k] = prefs[k]
        self.save_config()

    def get(self, key: str) -> Any:
        return self.config.get(key, DEFAULT_PREFERENCES.get(key))

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=int(self.get("retry_max")),
            base_delay=float(self.get("retry_base_delay")),
            max_delay=float(self.get("retry_max_delay")),
        )
