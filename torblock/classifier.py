from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Mapping, Optional

from torblock.blocklist import BlocklistState
from torblock.config import TorBlockConfig
from torblock.errors import AddressFormatError, AddressUnparsable
from torblock.logutil import log_warning_throttled
from torblock.netaddr import parse_ip


logger = logging.getLogger(__name__)


class Action(enum.Enum):
    FORWARD = "forward"
    REJECT = "reject"
    REDIRECT = "redirect"


@dataclass(frozen=True)
class Decision:
    action: Action
    location: str = ""

    @property
    def status_code(self) -> Optional[int]:
        if self.action is Action.REJECT:
            return 403
        if self.action is Action.REDIRECT:
            return 302
        return None


FORWARD = Decision(Action.FORWARD)
REJECT = Decision(Action.REJECT)


class RequestClassifier:
    def __init__(self, config: TorBlockConfig, state: BlocklistState):
        self.config = config
        self.state = state

    def resolve_client_address(self, headers: Optional[Mapping[str, str]], remote_addr: Optional[str]) -> str:
        """Client address from the forwarded header, else the transport peer.

        The header is trusted as-is; it is only meaningful when an upstream
        proxy overwrites it. For a comma-separated chain the left-most entry
        (the original client) is used.
        """
        value = ""
        name = self.config.forwarded_header_name
        if headers is not None and name:
            value = (headers.get(name) or "").strip()
        if value:
            return value.split(",", 1)[0].strip()
        return (remote_addr or "").strip()

    def classify(self, address: str, request_uri: str = "") -> Decision:
        """Decide what to do with a request from `address`.

        Raises AddressUnparsable when `address` is not an IP literal.
        """
        try:
            ip = parse_ip(address)
        except AddressFormatError as e:
            raise AddressUnparsable(address) from e

        if not self.state.contains(ip):
            return FORWARD

        cfg = self.config
        if cfg.redirect_enabled:
            location = cfg.redirect_protocol + cfg.redirect_hostname.strip()
            if cfg.redirect_save_path:
                location += request_uri or ""
            return Decision(Action.REDIRECT, location)
        return REJECT

    def decide(
        self,
        headers: Optional[Mapping[str, str]],
        remote_addr: Optional[str],
        request_uri: str = "",
    ) -> Decision:
        if not self.config.enabled:
            return FORWARD

        address = self.resolve_client_address(headers, remote_addr)
        try:
            decision = self.classify(address, request_uri)
        except AddressUnparsable:
            log_warning_throttled(
                logger,
                "classifier.unparsable",
                address[:64],
                interval_seconds=60.0,
                message="Failed to parse IP from remote address %r; letting the request through",
            )
            return FORWARD

        if decision.action is Action.REDIRECT:
            logger.info("Redirecting %s to %s", address, decision.location)
        elif decision.action is Action.REJECT:
            logger.info("Request denied (%s)", address)
        return decision
