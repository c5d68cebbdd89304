from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional
from urllib.parse import urlparse

from torblock.errors import ConfigError


DEFAULT_ADDRESS_LIST_URL = "https://check.torproject.org/exit-addresses"
DEFAULT_UPDATE_INTERVAL_SECONDS = 60 * 60
MIN_UPDATE_INTERVAL_SECONDS = 60
FETCH_TIMEOUT_SECONDS = 10


@dataclass(frozen=True)
class TorBlockConfig:
    enabled: bool = True
    address_list_url: str = DEFAULT_ADDRESS_LIST_URL
    update_interval_seconds: int = DEFAULT_UPDATE_INTERVAL_SECONDS
    redirect_protocol: str = "http://"
    redirect_hostname: str = ""
    redirect_save_path: bool = True
    forwarded_header_name: str = "X-Forwarded-For"

    def validate(self) -> "TorBlockConfig":
        """Raise ConfigError for settings that can never work.

        An unreachable list URL is not an error here; the first refresh logs it.
        """
        if not _is_absolute_http_url(self.address_list_url):
            raise ConfigError("failed to parse exit-addresses URL")
        try:
            interval = int(self.update_interval_seconds)
        except (TypeError, ValueError):
            raise ConfigError("update interval must be an integer number of seconds")
        if interval < MIN_UPDATE_INTERVAL_SECONDS:
            raise ConfigError(f"update interval cannot be less than {MIN_UPDATE_INTERVAL_SECONDS} seconds")
        return self

    @property
    def redirect_enabled(self) -> bool:
        return bool((self.redirect_hostname or "").strip())

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "TorBlockConfig":
        env = os.environ if environ is None else environ
        d = cls()

        def _env_str(name: str, default: str) -> str:
            v = env.get(name)
            return default if v is None else v.strip()

        def _env_int(name: str, default: int) -> int:
            v = (env.get(name) or "").strip()
            if not v:
                return int(default)
            try:
                return int(v)
            except Exception:
                return int(default)

        def _env_bool(name: str, default: bool) -> bool:
            v = (env.get(name) or "").strip().lower()
            if not v:
                return default
            return v in ("1", "true", "yes", "on")

        return cls(
            enabled=_env_bool("TORBLOCK_ENABLED", d.enabled),
            address_list_url=_env_str("TORBLOCK_ADDRESS_LIST_URL", d.address_list_url),
            update_interval_seconds=_env_int("TORBLOCK_UPDATE_INTERVAL", d.update_interval_seconds),
            redirect_protocol=_env_str("TORBLOCK_REDIRECT_PROTOCOL", d.redirect_protocol),
            redirect_hostname=_env_str("TORBLOCK_REDIRECT_HOSTNAME", d.redirect_hostname),
            redirect_save_path=_env_bool("TORBLOCK_REDIRECT_SAVE_PATH", d.redirect_save_path),
            forwarded_header_name=_env_str("TORBLOCK_FORWARDED_HEADER", d.forwarded_header_name)
            or d.forwarded_header_name,
        )


def _is_absolute_http_url(url: str) -> bool:
    s = (url or "").strip()
    if not s or any(ch.isspace() for ch in s):
        return False
    try:
        u = urlparse(s)
    except ValueError:
        return False
    return u.scheme in ("http", "https") and bool(u.netloc)
