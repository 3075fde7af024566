from __future__ import annotations

import http.client
import json
import logging
import urllib.error
import urllib.request
from typing import Any, Optional
from urllib.parse import urlsplit

from .config import PollConfig
from .errors import ConfigurationError, DecodeError, ReadError, TransportError
from .models import MetricsMessage

logger = logging.getLogger(__name__)


class SameHostRedirectHandler(urllib.request.HTTPRedirectHandler):
    """Follows redirects but keeps the auth token on the original host."""

    def redirect_request(self, req, fp, code, msg, headers, newurl):
        new_request = super().redirect_request(req, fp, code, msg, headers, newurl)
        if new_request is not None and urlsplit(newurl).netloc != urlsplit(req.full_url).netloc:
            logger.warning("dropping authorization on redirect to %s", newurl)
            new_request.remove_header("Authorization")
        return new_request


class MetricsClient:
    """Issues authenticated GETs against the local metrics service.

    Every call opens a fresh connection and is bounded by ``timeout_sec``.
    Failures are raised as typed errors; nothing is retried here.
    """

    def __init__(
        self,
        base_url: str,
        auth_token: str,
        timeout_sec: float = 10.0,
        opener: Optional[urllib.request.OpenerDirector] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._auth_token = auth_token
        self._timeout_sec = timeout_sec
        # environment proxies are ignored
        self._opener = opener or urllib.request.build_opener(
            urllib.request.ProxyHandler({}), SameHostRedirectHandler()
        )

    @classmethod
    def from_config(cls, config: PollConfig) -> "MetricsClient":
        return cls(config.base_url, config.auth_token, timeout_sec=config.timeout_sec)

    def url_for(self, path: str) -> str:
        if not path.startswith("/"):
            path = "/" + path
        return self._base_url + path

    def build_request(self, path: str) -> urllib.request.Request:
        return urllib.request.Request(
            self.url_for(path),
            headers={
                "Authorization": f"token={self._auth_token}",
                "Accept": "application/json",
            },
            method="GET",
        )

    def get_text(self, path: str) -> str:
        if not self._auth_token:
            raise ConfigurationError("auth token must be set, use --auth-token <token>")

        request = self.build_request(path)
        logger.info("requesting %s", request.full_url, extra={"path": path})
        try:
            response = self._opener.open(request, timeout=self._timeout_sec)
        except urllib.error.HTTPError as exc:
            logger.error("metrics service responded with %s", exc.code, extra={"path": path})
            raise TransportError(
                f"metrics service responded with HTTP {exc.code} for {path}",
                path=path,
                cause=exc,
            ) from exc
        except (urllib.error.URLError, OSError, http.client.HTTPException) as exc:
            logger.error("error requesting data: %s", exc, extra={"path": path})
            raise TransportError(f"request to {path} failed: {exc}", path=path, cause=exc) from exc

        with response:
            try:
                body = response.read()
            except (OSError, http.client.HTTPException) as exc:
                logger.error("error reading response body: %s", exc, extra={"path": path})
                raise ReadError(
                    f"reading response from {path} failed: {exc}", path=path, cause=exc
                ) from exc

        return body.decode("utf-8", errors="replace")

    def fetch(self, path: str) -> MetricsMessage:
        text = self.get_text(path)
        payload = decode_json(path, text)
        # a null body is rejected rather than read as an empty message
        if not isinstance(payload, dict):
            raise DecodeError("metrics payload must be a JSON object", path=path, body=text)
        logger.info("received data from metrics endpoint", extra={"path": path})
        return MetricsMessage.from_dict(payload)


def decode_json(path: str, text: str) -> Any:
    try:
        return json.loads(text)
    except (ValueError, RecursionError) as exc:
        logger.error(
            "error parsing JSON: %s. JSON content was: %.500s", exc, text, extra={"path": path}
        )
        raise DecodeError(f"invalid JSON: {exc}", path=path, body=text) from exc


def fetch_metrics(path: str, config: PollConfig) -> MetricsMessage:
    return MetricsClient.from_config(config).fetch(path)
