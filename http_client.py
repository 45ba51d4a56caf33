"""Thin ``requests`` wrapper shared by the hand-written backend adapters."""

from __future__ import annotations

import functools
import json
import logging
from typing import Any, Dict, Optional, Tuple, Union
from urllib.parse import urljoin

import requests

from errors import HttpError, TransportError
from models import ServerConfig
from retry import RetryPolicy, resolve_policy, with_retry

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30
IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "PUT", "DELETE"})


def normalize_url(url: str) -> str:
    """Default a bare host to http:// and strip trailing slashes."""
    url = (url or "").strip()
    if not url:
        return url
    if "://" not in url:
        url = "http://" + url
    return url.rstrip("/")


def parse_body(text: str) -> Any:
    # Several services answer with bare strings such as "Ok." or "Fails.".
    if not text:
        return {}
    try:
        return json.loads(text)
    except ValueError:
        return text


class HttpClient:
    """One instance per adapter; the underlying session keeps its own cookie jar."""

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        auth: Optional[Tuple[str, str]] = None,
        verify: bool = True,
        headers: Optional[Dict[str, str]] = None,
        session: Optional[requests.Session] = None,
        retry: Optional[RetryPolicy] = None,
    ) -> None:
        self.base_url = base_url
        self.timeout = timeout
        self.auth = auth
        self.verify = verify
        self.headers: Dict[str, str] = dict(headers or {})
        self.session = session or requests.Session()
        # Applied to idempotent methods when a call does not pass its own policy.
        self.retry = retry

    @classmethod
    def for_server(cls, config: ServerConfig, base_url: Optional[str] = None,
                   session: Optional[requests.Session] = None, **kwargs) -> "HttpClient":
        auth = None
        if config.http_auth and config.http_auth.username:
            auth = (config.http_auth.username, config.http_auth.password)
        options = config.client_options or {}
        return cls(
            base_url if base_url is not None else normalize_url(config.hostname) + "/",
            timeout=float(options.get("timeout", DEFAULT_TIMEOUT)),
            auth=kwargs.pop("auth", auth),
            verify=bool(options.get("verifySsl", True)),
            session=session,
            **kwargs,
        )

    def url_for(self, endpoint: str) -> str:
        return urljoin(self.base_url, endpoint) if endpoint else self.base_url

    def request(
        self,
        endpoint: str = "",
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
        params: Any = None,
        body: Any = None,
        form: Optional[Dict[str, Any]] = None,
        files: Optional[Dict[str, Any]] = None,
        retry: Union[None, bool, dict, RetryPolicy] = None,
    ) -> Any:
        policy = resolve_policy(retry)
        if retry is None and method.upper() in IDEMPOTENT_METHODS:
            policy = self.retry
        send = functools.partial(self._send, endpoint, method, headers, params, body, form, files)
        if policy is None:
            return send()
        return with_retry(send, policy)

    def _send(self, endpoint, method, headers, params, body, form, files) -> Any:
        url = self.url_for(endpoint)
        merged = dict(self.headers)
        merged.update(headers or {})
        kwargs: Dict[str, Any] = {
            "params": params,
            "headers": merged,
            "timeout": self.timeout,
            "verify": self.verify,
        }
        if self.auth:
            kwargs["auth"] = self.auth
        if files is not None:
            kwargs["files"] = files
            kwargs["data"] = form
        elif form is not None:
            kwargs["data"] = form
        elif isinstance(body, (dict, list)):
            kwargs["json"] = body
        elif body is not None:
            kwargs["data"] = body

        logger.debug("%s %s", method, url)
        try:
            response = self.session.request(method, url, **kwargs)
        except requests.RequestException as exc:
            raise TransportError(f"{method} {url} failed: {exc}") from exc

        if not 200 <= response.status_code < 300:
            raise HttpError(response.status_code, response.reason or "", response)
        return parse_body(response.text)

    def get(self, endpoint: str = "", **kwargs) -> Any:
        return self.request(endpoint, "GET", **kwargs)

    def post(self, endpoint: str = "", body: Any = None, **kwargs) -> Any:
        return self.request(endpoint, "POST", body=body, **kwargs)

    def put(self, endpoint: str = "", body: Any = None, **kwargs) -> Any:
        return self.request(endpoint, "PUT", body=body, **kwargs)

    def patch(self, endpoint: str = "", body: Any = None, **kwargs) -> Any:
        return self.request(endpoint, "PATCH", body=body, **kwargs)

    def delete(self, endpoint: str = "", **kwargs) -> Any:
        return self.request(endpoint, "DELETE", **kwargs)

    def close(self) -> None:
        self.session.close()
