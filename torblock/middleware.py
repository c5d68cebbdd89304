"""Wire the blocklist into a WSGI or Flask request pipeline.

`TorBlock` owns the live blocklist, the refresh loop and the classifier.
Construction validates the config and, unless told otherwise, runs the first
refresh synchronously before returning, so the instance is ready for traffic.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, Optional
from urllib.parse import quote, unquote, urlsplit

from flask import request as flask_request
from werkzeug.datastructures import EnvironHeaders
from werkzeug.utils import redirect
from werkzeug.wrappers import Request, Response

from torblock.blocklist import BlocklistState
from torblock.classifier import Action, Decision, RequestClassifier
from torblock.config import FETCH_TIMEOUT_SECONDS, TorBlockConfig
from torblock.fetcher import BlocklistFetcher, FetchFunc
from torblock.scheduler import RefreshScheduler, RefreshStatus


_PATH_SAFE = "/:@!$&'()*+,;=~"


def _raw_request_path(environ: Dict[str, Any], decoded_path: str) -> Optional[str]:
    """Path exactly as the client sent it, when the server exposes it.

    Only used when it decodes to the same path werkzeug routed on, so an
    absolute-form or otherwise surprising request target is ignored.
    """
    raw = environ.get("RAW_URI") or environ.get("REQUEST_URI") or ""
    if not raw:
        return None
    raw_path = urlsplit(raw).path
    if not raw_path.startswith("/"):
        return None
    try:
        raw_bytes = raw_path.encode("latin-1")
    except UnicodeEncodeError:
        raw_bytes = raw_path.encode("utf-8")
    candidate = quote(raw_bytes, safe=_PATH_SAFE + "%")
    if unquote(candidate) != decoded_path:
        return None
    return candidate


def request_uri_from_environ(environ: Dict[str, Any]) -> str:
    """Encoded path plus raw query string, e.g. ``/foo?x=1``.

    Escapes in the original request target (``/a%2Fb``) are kept.
    """
    req = Request(environ)
    decoded = req.script_root + req.path
    path = _raw_request_path(environ, decoded) or quote(decoded, safe=_PATH_SAFE) or "/"
    qs = req.query_string.decode("latin-1")
    return f"{path}?{qs}" if qs else path


def decision_response(decision: Decision) -> Optional[Response]:
    """Response for a blocking decision, or None to let the request through."""
    if decision.action is Action.REDIRECT:
        return redirect(decision.location, code=302)
    if decision.action is Action.REJECT:
        return Response(status=403)
    return None


class TorBlock:
    def __init__(
        self,
        config: Optional[TorBlockConfig] = None,
        *,
        fetch: Optional[FetchFunc] = None,
        start: bool = True,
    ):
        self.config = (config or TorBlockConfig()).validate()
        self.state = BlocklistState()
        self.fetcher = BlocklistFetcher(
            self.config.address_list_url,
            timeout=FETCH_TIMEOUT_SECONDS,
            fetch=fetch,
        )
        self.scheduler = RefreshScheduler(
            self.fetcher,
            self.state,
            interval_seconds=self.config.update_interval_seconds,
        )
        self.classifier = RequestClassifier(self.config, self.state)

        if start and self.config.enabled:
            self.scheduler.start()

    def decide_environ(self, environ: Dict[str, Any]) -> Decision:
        if not self.config.enabled:
            return self.classifier.decide(None, None)
        return self.classifier.decide(
            EnvironHeaders(environ),
            environ.get("REMOTE_ADDR"),
            request_uri_from_environ(environ),
        )

    def status(self) -> RefreshStatus:
        return self.scheduler.status()

    def stop(self, timeout: Optional[float] = None) -> None:
        self.scheduler.stop(timeout)

    def wrap(self, wsgi_app: Callable) -> "TorBlockMiddleware":
        return TorBlockMiddleware(wsgi_app, self)

    def init_app(self, app) -> None:
        """Register a Flask before_request hook that applies the decision."""
        app.extensions["torblock"] = self

        def _torblock_guard():
            return decision_response(self.decide_environ(flask_request.environ))

        app.before_request(_torblock_guard)


class TorBlockMiddleware:
    def __init__(self, app: Callable, torblock: TorBlock):
        self.app = app
        self.torblock = torblock

    def __call__(self, environ: Dict[str, Any], start_response: Callable) -> Iterable[bytes]:
        resp = decision_response(self.torblock.decide_environ(environ))
        if resp is None:
            return self.app(environ, start_response)
        return resp(environ, start_response)
