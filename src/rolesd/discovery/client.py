"""
Query client for the metrics backend.

Runs one instant query per refresh cycle against the Prometheus HTTP API and
returns a decoded ``QueryResult`` or raises a typed ``QueryError``. Nothing is
retried here; the discovery loop owns the retry policy.
"""

from __future__ import annotations

import json
from typing import Any

import httpx
import structlog

from rolesd import __version__
from rolesd.core.errors import BackendStatusError, DecodeError, RequestBuildError, TransportError
from rolesd.discovery.models import QueryResult, Sample

logger = structlog.get_logger()

DEFAULT_USER_AGENT = f"rolesd/{__version__}"

QUERY_PATH = "/api/v1/query"

ROLE_QUERY_TEMPLATE = "up{{role=~'{role}', exporter_port=~'.+', metrics_path=~'.+', app=~'.+'}}"


def build_role_query(role: str) -> str:
    """Build the ``up`` selector for every exporter carrying the given role."""
    return ROLE_QUERY_TEMPLATE.format(role=role)


def backend_base_url(address: str) -> str:
    """
    Normalize a backend address to a base URL.

    ``host:port`` becomes ``http://host:port``; explicit http(s) URLs are kept.

    Raises:
        RequestBuildError: If the address is empty or uses another scheme
    """
    address = address.strip()
    if not address:
        raise RequestBuildError("Backend address is empty")

    if "://" not in address:
        address = f"http://{address}"

    scheme = address.split("://", 1)[0].lower()
    if scheme not in ("http", "https"):
        raise RequestBuildError(
            f"Unsupported backend URL scheme: {scheme}",
            details={"address": address},
        )

    return address.rstrip("/")


def decode_query_response(body: bytes) -> QueryResult:
    """
    Decode a /api/v1/query response body.

    The body must hold exactly one top-level JSON object. Trailing values are
    rejected instead of silently replacing the first one.

    Raises:
        DecodeError: If the body is empty, not JSON, holds several values,
            or lacks the expected envelope
        BackendStatusError: If the envelope reports a non-success status
    """
    try:
        text = body.decode("utf-8").strip()
    except UnicodeDecodeError as exc:
        raise DecodeError(f"Response body is not UTF-8: {exc}") from exc

    if not text:
        raise DecodeError("Response body is empty")

    decoder = json.JSONDecoder()
    try:
        payload, end = decoder.raw_decode(text)
    except json.JSONDecodeError as exc:
        raise DecodeError(f"Response body is not valid JSON: {exc}") from exc

    if text[end:].strip():
        raise DecodeError("Response body holds more than one top-level JSON value")

    if not isinstance(payload, dict):
        raise DecodeError(f"Expected a JSON object, got {type(payload).__name__}")

    status = payload.get("status")
    if status != "success":
        error = payload.get("error", "Unknown error")
        raise BackendStatusError(
            f"Prometheus API error: {error}",
            details={"status": status, "error_type": payload.get("errorType")},
        )

    data = payload.get("data")
    if not isinstance(data, dict):
        raise DecodeError("Response is missing the data object")

    rows = data.get("result")
    if not isinstance(rows, list):
        raise DecodeError("Response data is missing the result list")

    samples = tuple(_to_sample(row) for row in rows)

    return QueryResult(
        status=status,
        result_type=str(data.get("resultType", "")),
        samples=samples,
    )


def _to_sample(row: Any) -> Sample:
    # Malformed rows are kept so the builder can reject them one by one.
    if not isinstance(row, dict):
        return Sample(metric=row)
    return Sample(metric=row.get("metric"), value=row.get("value"))


class PrometheusQueryClient:
    """Instant-query client for one metrics backend."""

    def __init__(
        self,
        address: str,
        *,
        timeout: float = 10.0,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._address = address
        self._timeout = timeout
        self._user_agent = user_agent
        self._transport = transport

    async def query_role(self, role: str) -> QueryResult:
        """Query every ``up`` series whose ``role`` label matches ``role``."""
        return await self.query(build_role_query(role))

    async def query(self, promql: str) -> QueryResult:
        """
        Execute an instant query.

        The response body is read inside a streaming context and released on
        every path, so a failed decode never leaks the connection.

        Args:
            promql: PromQL expression

        Returns:
            Decoded query result

        Raises:
            RequestBuildError: Malformed endpoint or query
            TransportError: Network failure or non-success HTTP status
            DecodeError: Undecodable or malformed body
        """
        url = f"{backend_base_url(self._address)}{QUERY_PATH}"

        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            try:
                request = client.build_request(
                    "GET",
                    url,
                    params={"query": promql},
                    headers={"User-Agent": self._user_agent},
                )
            except (httpx.InvalidURL, ValueError) as exc:
                raise RequestBuildError(
                    f"Cannot build query request: {exc}", details={"url": url}
                ) from exc

            try:
                response = await client.send(request, stream=True)
            except httpx.HTTPError as exc:
                raise TransportError(
                    f"Error querying {url}: {exc}", details={"url": url}
                ) from exc

            try:
                body = await response.aread()
            except httpx.HTTPError as exc:
                raise TransportError(
                    f"Error reading response from {url}: {exc}", details={"url": url}
                ) from exc
            finally:
                await response.aclose()

        if not response.is_success:
            logger.debug("query_http_status", url=url, status=response.status_code)
            raise BackendStatusError(
                f"HTTP {response.status_code} from {url}",
                status_code=response.status_code,
                details={"url": url},
            )

        return decode_query_response(body)
