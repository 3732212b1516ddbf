"""HTTP client for the shared ban-record registry."""

from __future__ import annotations

import json
import time
import urllib.error
import urllib.request
from typing import Any, Callable, Optional
from urllib.parse import quote, urlencode, urljoin

from mprdb.envelope import record_from_dict, server_from_dict, statement_to_dict
from mprdb.errors import Conflict, RegistryError
from mprdb.logger import get_logger
from mprdb.retry import send_with_retry
from mprdb.types import JsonDict, Recall, Record, Registration, ServerInfo, Unregistration

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_RETRY_ATTEMPTS = 3

Fetcher = Callable[[str, str, dict[str, str], Optional[bytes]], tuple[int, bytes]]


def urllib_fetcher(timeout: float = DEFAULT_TIMEOUT_SECONDS) -> Fetcher:
    def fetch(url: str, method: str, headers: dict[str, str], body: bytes | None) -> tuple[int, bytes]:
        request = urllib.request.Request(url, method=method, headers=headers, data=body)
        try:
            with urllib.request.urlopen(request, timeout=timeout) as response:
                return response.status, response.read()
        except urllib.error.HTTPError as error:
            return error.code, error.read()

    return fetch


def _segment(value: str) -> str:
    return quote(value, safe="")


class RegistryClient:
    """
    Transport for signed statements. Records returned by the list calls are
    unverified; pass them through ``mprdb.verifier.verify``.
    """

    def __init__(
        self,
        api_url: str,
        *,
        fetcher: Fetcher | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        retry_attempts: int = DEFAULT_RETRY_ATTEMPTS,
        sleep: Callable[[float], None] | None = None,
    ):
        self.api_url = api_url if api_url.endswith("/") else api_url + "/"
        self._fetcher = fetcher or urllib_fetcher(timeout)
        self._retry_attempts = retry_attempts
        self._sleep = sleep or time.sleep

    def _url(self, path: str, query: dict[str, Any] | None = None) -> str:
        url = urljoin(self.api_url, path)
        params = {key: value for key, value in (query or {}).items() if value is not None}
        return f"{url}?{urlencode(params)}" if params else url

    def _request(
        self,
        method: str,
        path: str,
        *,
        body: JsonDict | None = None,
        query: dict[str, Any] | None = None,
    ) -> JsonDict:
        url = self._url(path, query)
        data = json.dumps(body).encode("utf-8") if body is not None else None
        headers = {"Accept": "application/json"}
        if data is not None:
            headers["Content-Type"] = "application/json"

        def send() -> tuple[int, bytes]:
            return self._fetcher(url, method, headers, data)

        logger.debug("%s %s", method, url)
        try:
            if method == "GET":
                status, raw = send_with_retry(send, attempts=self._retry_attempts, sleep=self._sleep)
            else:
                status, raw = send()
        except OSError as error:
            raise RegistryError(None, str(getattr(error, "reason", error)))

        text = raw.decode("utf-8", errors="replace") if raw else ""
        try:
            payload = json.loads(text) if text else {}
        except json.JSONDecodeError:
            payload = None

        if not 200 <= status < 300:
            reason = payload.get("reason") if isinstance(payload, dict) else None
            reason = str(reason or text or "no reason given")
            if status == 409:
                raise Conflict(status, reason)
            raise RegistryError(status, reason)

        if not isinstance(payload, dict):
            raise RegistryError(status, f"unexpected response body: {text[:200]!r}")
        if payload.get("status") == "NG":
            raise RegistryError(status, str(payload.get("reason", "request rejected")))
        return JsonDict(payload)

    @staticmethod
    def _uuid_of(payload: JsonDict, operation: str) -> str:
        value = payload.get("uuid")
        if not value:
            raise RegistryError(None, f"{operation} response carries no uuid")
        return str(value)

    def register(self, registration: Registration) -> str:
        payload = self._request("PUT", "server/register", body=statement_to_dict(registration))
        return self._uuid_of(payload, "register")

    def unregister(self, unregistration: Unregistration) -> str:
        path = f"server/uuid/{_segment(unregistration.server_uuid)}"
        payload = self._request("DELETE", path, body=statement_to_dict(unregistration))
        return self._uuid_of(payload, "unregister")

    def submit_record(self, record: Record) -> str:
        payload = self._request("PUT", "submit/new", body=statement_to_dict(record))
        return self._uuid_of(payload, "submit")

    def recall_record(self, recall: Recall) -> str:
        path = f"submit/uuid/{_segment(recall.submit_uuid)}"
        payload = self._request("DELETE", path, body=statement_to_dict(recall))
        return self._uuid_of(payload, "recall")

    def list_servers(self, limit: int | None = None) -> list[ServerInfo]:
        payload = self._request("GET", "server/list", query={"limit": limit})
        servers = payload.get("servers")
        if not isinstance(servers, list):
            return []
        return [server_from_dict(item) for item in servers if isinstance(item, dict)]

    def list_records(
        self,
        *,
        submit_uuid: str | None = None,
        server_uuid: str | None = None,
        key_id: str | None = None,
        after: int | None = None,
        limit: int | None = None,
    ) -> list[Record]:
        selectors = [value for value in (submit_uuid, server_uuid, key_id) if value]
        if len(selectors) != 1:
            raise ValueError("Exactly one of submit_uuid, server_uuid or key_id is required")

        if submit_uuid:
            payload = self._request("GET", f"submit/uuid/{_segment(submit_uuid)}")
            item = payload.get("submit")
            return [record_from_dict(item)] if isinstance(item, dict) else []

        if server_uuid:
            path = f"submit/server/{_segment(server_uuid)}"
        else:
            path = f"submit/key/{_segment(str(key_id))}"
        payload = self._request("GET", path, query={"after": after, "limit": limit})
        submits = payload.get("submits")
        if not isinstance(submits, list):
            return []
        return [record_from_dict(item) for item in submits if isinstance(item, dict)]
