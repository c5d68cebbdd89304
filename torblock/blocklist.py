from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import FrozenSet

from torblock.netaddr import IPLiteral, IPv4Address, IPv4Set, IPv6Address, IPv6Set, ipv4_of, to_ipv6


@dataclass(frozen=True)
class BlocklistSnapshot:
    ipv4: FrozenSet[IPv4Address] = field(default_factory=frozenset)
    ipv6: FrozenSet[IPv6Address] = field(default_factory=frozenset)

    def __len__(self) -> int:
        return len(self.ipv4) + len(self.ipv6)

    def contains(self, ip: IPLiteral) -> bool:
        v4 = ipv4_of(ip)
        if v4 is not None:
            return v4 in self.ipv4
        return to_ipv6(ip) in self.ipv6


class BlocklistState:
    """Live blocklist shared by the refresh thread and request threads.

    Readers grab the current snapshot reference without locking. The writer
    builds a merged snapshot and swaps the reference; the lock only serializes
    writers. Entries are never removed.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshot = BlocklistSnapshot()

    def snapshot(self) -> BlocklistSnapshot:
        return self._snapshot

    def merge(self, ipv4: IPv4Set, ipv6: IPv6Set) -> BlocklistSnapshot:
        with self._lock:
            cur = self._snapshot
            new_v4 = ipv4.freeze() - cur.ipv4
            new_v6 = ipv6.freeze() - cur.ipv6
            if not new_v4 and not new_v6:
                return cur
            self._snapshot = BlocklistSnapshot(
                ipv4=cur.ipv4 | new_v4,
                ipv6=cur.ipv6 | new_v6,
            )
            return self._snapshot

    def contains(self, ip: IPLiteral) -> bool:
        return self._snapshot.contains(ip)

    def __len__(self) -> int:
        return len(self._snapshot)
