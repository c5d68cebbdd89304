#!/usr/bin/env python3
from __future__ import annotations

import argparse
import os
import sys
from typing import List, Optional


def _read_file(path: str, timeout: float) -> str:
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        return f.read()


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Fetch a Tor exit address list and check addresses against it")
    ap.add_argument(
        "--url",
        default=None,
        help="Address list URL (default: TORBLOCK_ADDRESS_LIST_URL or the Tor Project exit list)",
    )
    ap.add_argument(
        "--file",
        default=None,
        help="Read the address list from a local file instead of fetching it",
    )
    ap.add_argument("addresses", nargs="*", help="IP addresses to look up")
    ns = ap.parse_args(argv)

    # This script lives in tools/; add the project root to sys.path.
    here = os.path.abspath(os.path.dirname(__file__))
    app_root = os.path.abspath(os.path.join(here, ".."))
    if app_root not in sys.path:
        sys.path.insert(0, app_root)

    from torblock.blocklist import BlocklistState
    from torblock.config import TorBlockConfig
    from torblock.errors import AddressFormatError, FetchError
    from torblock.fetcher import BlocklistFetcher
    from torblock.netaddr import parse_ip

    url = ns.url or TorBlockConfig.from_env().address_list_url
    fetcher = BlocklistFetcher(ns.file or url, fetch=_read_file if ns.file else None)
    try:
        result = fetcher.run()
    except (FetchError, OSError) as e:
        print(f"[torblock_check] failed to load address list: {e}", file=sys.stderr)
        return 2

    state = BlocklistState()
    state.merge(result.ipv4, result.ipv6)
    print(
        f"source={fetcher.url} tokens={result.tokens} rejected={result.rejected} "
        f"ipv4={len(result.ipv4)} ipv6={len(result.ipv6)}"
    )

    rc = 0
    for addr in ns.addresses:
        try:
            listed = state.contains(parse_ip(addr))
        except AddressFormatError:
            print(f"{addr}\tinvalid")
            rc = 1
            continue
        print(f"{addr}\t{'listed' if listed else 'not listed'}")
    return rc


if __name__ == "__main__":
    raise SystemExit(main())
