"""Comparable IPv4/IPv6 values and the sets the blocklist is built from.

IPv4 parsing is strict and hand-rolled on purpose: it must accept exactly four
dot-separated decimal fields (leading zeros allowed) and nothing else. IPv6
parsing delegates to :mod:`ipaddress`, which covers the whole textual grammar.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from typing import Generic, Iterable, Iterator, Set, TypeVar, Union

from torblock.errors import AddressFormatError


IPLiteral = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


@dataclass(frozen=True)
class IPv4Address:
    """A 32-bit IPv4 address, first octet in the most significant byte."""

    value: int

    @classmethod
    def from_octets(cls, a: int, b: int, c: int, d: int) -> "IPv4Address":
        return cls((a & 0xFF) << 24 | (b & 0xFF) << 16 | (c & 0xFF) << 8 | (d & 0xFF))

    def octets(self) -> tuple:
        v = self.value
        return ((v >> 24) & 0xFF, (v >> 16) & 0xFF, (v >> 8) & 0xFF, v & 0xFF)

    def __str__(self) -> str:
        return ".".join(str(o) for o in self.octets())


@dataclass(frozen=True)
class IPv6Address:
    """A 16-byte IPv6 address."""

    packed: bytes

    def __post_init__(self) -> None:
        if not isinstance(self.packed, bytes) or len(self.packed) != 16:
            raise AddressFormatError("IPv6 address must be exactly 16 bytes")

    def __str__(self) -> str:
        return str(ipaddress.IPv6Address(self.packed))


def parse_ipv4(s: str) -> IPv4Address:
    """Parse `s` as a dotted quad.

    Rejects empty fields, fields above 255, any character other than digits and
    dots, and anything but exactly three dots.
    """
    fields = []
    val = 0
    n = len(s or "")
    if n == 0:
        raise AddressFormatError("empty address")
    for i, ch in enumerate(s):
        if "0" <= ch <= "9":
            val = val * 10 + (ord(ch) - ord("0"))
            if val > 255:
                raise AddressFormatError("field has value >255")
        elif ch == ".":
            if i == 0 or i == n - 1 or s[i - 1] == ".":
                raise AddressFormatError("every field must have at least one digit")
            if len(fields) == 3:
                raise AddressFormatError("address too long")
            fields.append(val)
            val = 0
        else:
            raise AddressFormatError("unexpected character")
    if len(fields) < 3:
        raise AddressFormatError("address too short")
    return IPv4Address.from_octets(fields[0], fields[1], fields[2], val)


def parse_ip(s: str) -> IPLiteral:
    """General IP literal parser used for routing tokens and client addresses."""
    try:
        ip = ipaddress.ip_address((s or "").strip())
    except ValueError as e:
        raise AddressFormatError(f"invalid IP address: {s!r}") from e
    if isinstance(ip, ipaddress.IPv6Address) and ip.scope_id:
        raise AddressFormatError(f"scoped IPv6 address not supported: {s!r}")
    return ip


def to_ipv6(ip: IPLiteral) -> IPv6Address:
    if isinstance(ip, ipaddress.IPv4Address):
        # 16-byte view of an IPv4 literal is its IPv4-mapped form.
        return IPv6Address(b"\x00" * 10 + b"\xff\xff" + ip.packed)
    return IPv6Address(ip.packed)


def parse_ipv6(s: str) -> IPv6Address:
    return to_ipv6(parse_ip(s))


def ipv4_of(ip: IPLiteral) -> Union[IPv4Address, None]:
    """Return the IPv4 value for IPv4 and IPv4-mapped IPv6 literals, else None."""
    if isinstance(ip, ipaddress.IPv4Address):
        return IPv4Address(int(ip))
    mapped = ip.ipv4_mapped
    if mapped is not None:
        return IPv4Address(int(mapped))
    return None


T = TypeVar("T", IPv4Address, IPv6Address)


class AddressSet(Generic[T]):
    def __init__(self, items: Iterable[T] = ()):
        self._set: Set[T] = set(items)

    def add(self, addr: T) -> None:
        self._set.add(addr)

    def contains(self, addr: T) -> bool:
        return addr in self._set

    def merge_from(self, other: "AddressSet[T]") -> None:
        self._set.update(other._set)

    def freeze(self) -> frozenset:
        return frozenset(self._set)

    def __contains__(self, addr: object) -> bool:
        return addr in self._set

    def __iter__(self) -> Iterator[T]:
        return iter(self._set)

    def __len__(self) -> int:
        return len(self._set)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AddressSet):
            return NotImplemented
        return self._set == other._set

    def __repr__(self) -> str:
        return f"{type(self).__name__}({len(self._set)} addresses)"


class IPv4Set(AddressSet[IPv4Address]):
    pass


class IPv6Set(AddressSet[IPv6Address]):
    pass
