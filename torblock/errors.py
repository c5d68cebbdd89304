from __future__ import annotations

import os
import re
from typing import Optional


class TorBlockError(Exception):
    """Base class for all errors raised by the Tor blocklist component."""


class ConfigError(TorBlockError, ValueError):
    pass


class AddressFormatError(TorBlockError, ValueError):
    pass


class AddressUnparsable(TorBlockError, ValueError):
    def __init__(self, address: str):
        super().__init__(f"failed to parse IP from remote address: {address!r}")
        self.address = address


class FetchError(TorBlockError):
    pass


class NetworkError(FetchError):
    pass


class HttpStatusError(FetchError):
    def __init__(self, status: int, url: Optional[str] = None):
        super().__init__(f"status code is {int(status)}")
        self.status = int(status)
        self.url = url


def expose_internal_errors() -> bool:
    return (os.environ.get("EXPOSE_INTERNAL_ERRORS") or "").strip().lower() in (
        "1",
        "true",
        "yes",
        "on",
    )


def clean_text(text: str, *, max_len: int = 200) -> str:
    s = (text or "").replace("\r", " ").replace("\n", " ").strip()
    # Remove other control chars.
    s = "".join(ch if (ch >= " " and ch != "\x7f") else " " for ch in s)
    s = re.sub(r"\s+", " ", s).strip()
    if max_len and len(s) > max_len:
        s = s[: max_len - 3].rstrip() + "..."
    return s


def public_error_message(
    e: Exception,
    *,
    default: str = "Blocklist update failed. Check server logs for details.",
    max_len: int = 200,
) -> str:
    """Return an error message that is safe to show outside the process.

    - Fetch errors describe the remote list, not our internals, so their message is kept.
    - ValueError messages (config validation) are kept as well.
    - Anything else collapses to `default` unless EXPOSE_INTERNAL_ERRORS is set.
    """
    if expose_internal_errors():
        detail = clean_text(f"{type(e).__name__}: {e}", max_len=max_len)
        return detail or default

    if isinstance(e, (FetchError, ValueError)):
        msg = clean_text(str(e), max_len=max_len)
        return msg or default

    return default
