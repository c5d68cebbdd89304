from __future__ import annotations

import http.client
import logging
import os
import re
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Tuple

from torblock.config import DEFAULT_ADDRESS_LIST_URL, FETCH_TIMEOUT_SECONDS
from torblock.errors import AddressFormatError, HttpStatusError, NetworkError
from torblock.netaddr import IPv4Set, IPv6Set, ipv4_of, parse_ip, parse_ipv4, parse_ipv6


logger = logging.getLogger(__name__)


# Dotted quads, or colon/hex runs. Coarse on purpose; netaddr does the validation.
IP_TOKEN_RE = re.compile(r"\b(?:\d{1,3}\.){3}\d{1,3}\b|\b[0-9a-fA-F:]{2,39}\b", re.ASCII)

USER_AGENT = "torblock/address-list"

FetchFunc = Callable[[str, float], str]


def _max_download_bytes() -> int:
    try:
        n = int((os.environ.get("TORBLOCK_MAX_DOWNLOAD_BYTES") or str(16 * 1024 * 1024)).strip())
    except Exception:
        n = 16 * 1024 * 1024
    if n <= 0:
        n = 16 * 1024 * 1024
    return n


def fetch_text(url: str, timeout: float = FETCH_TIMEOUT_SECONDS) -> str:
    """GET `url` and return the body as text.

    Raises HttpStatusError for any status other than 200 and NetworkError for
    transport failures, malformed URLs, timeouts and truncated or oversized
    bodies.
    """
    max_bytes = _max_download_bytes()
    try:
        req = urllib.request.Request(url, headers={"User-Agent": USER_AGENT}, method="GET")
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            status = int(getattr(resp, "status", 200) or 200)
            if status != 200:
                raise HttpStatusError(status, url)

            try:
                cl = resp.headers.get("Content-Length")
                if cl is not None and int(cl) > max_bytes:
                    raise NetworkError(f"address list too large (Content-Length={cl})")
            except ValueError:
                pass

            total = 0
            chunks: List[bytes] = []
            while True:
                chunk = resp.read(64 * 1024)
                if not chunk:
                    break
                total += len(chunk)
                if total > max_bytes:
                    raise NetworkError(f"address list exceeded limit ({max_bytes} bytes)")
                chunks.append(chunk)
    except urllib.error.HTTPError as e:
        raise HttpStatusError(e.code, url) from e
    except (urllib.error.URLError, OSError) as e:
        # socket.timeout is an OSError subclass.
        raise NetworkError(str(getattr(e, "reason", None) or e)) from e
    except (http.client.HTTPException, ValueError) as e:
        # InvalidURL (bad port) is a ValueError; IncompleteRead is an HTTPException.
        raise NetworkError(str(e) or type(e).__name__) from e

    return b"".join(chunks).decode("utf-8", errors="replace")


def extract_candidates(body: str) -> List[str]:
    return IP_TOKEN_RE.findall(body or "")


def classify_and_parse(tokens: Iterable[str]) -> Tuple[IPv4Set, IPv6Set, int]:
    """Sort tokens into IPv4 and IPv6 sets.

    Returns (ipv4, ipv6, rejected). IPv4-mapped IPv6 tokens (``::ffff:a.b.c.d``)
    go to the IPv4 set, since lookups of mapped clients use that set. A token
    that fails to parse is skipped; the batch always completes.
    """
    v4 = IPv4Set()
    v6 = IPv6Set()
    rejected = 0
    for tok in tokens:
        try:
            ip = parse_ip(tok)
            mapped = ipv4_of(ip)
            if mapped is None:
                v6.add(parse_ipv6(tok))
            elif ip.version == 4:
                v4.add(parse_ipv4(tok))
            else:
                v4.add(mapped)
        except AddressFormatError:
            rejected += 1
    if rejected:
        logger.debug("Skipped %d address-like tokens that did not parse", rejected)
    return v4, v6, rejected


@dataclass(frozen=True)
class FetchResult:
    ipv4: IPv4Set
    ipv6: IPv6Set
    tokens: int
    rejected: int


class BlocklistFetcher:
    def __init__(
        self,
        url: str = DEFAULT_ADDRESS_LIST_URL,
        *,
        timeout: float = FETCH_TIMEOUT_SECONDS,
        fetch: Optional[FetchFunc] = None,
    ):
        self.url = url
        self.timeout = float(timeout)
        self._fetch: FetchFunc = fetch or fetch_text

    def run(self, url: Optional[str] = None) -> FetchResult:
        """Fetch, extract and parse one address list.

        FetchError propagates to the caller; nothing outside the returned
        result is touched.
        """
        body = self._fetch(url or self.url, self.timeout)
        tokens = extract_candidates(body)
        v4, v6, rejected = classify_and_parse(tokens)
        return FetchResult(ipv4=v4, ipv6=v6, tokens=len(tokens), rejected=rejected)
