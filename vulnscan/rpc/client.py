"""Client side of remote scanning: sends scan requests to a scan server."""

from __future__ import annotations

import logging
from typing import Mapping, Protocol, Sequence

from vulnscan.retry import MAX_RETRIES, retry
from vulnscan.rpc import messages as pb
from vulnscan.rpc.convert import from_rpc_os, from_rpc_results
from vulnscan.types import OS, Result, ScanError, ScanOptions

logger = logging.getLogger(__name__)

Headers = Mapping[str, Sequence[str]]

# Headers the RPC transport sets itself and that callers may not override.
_RESERVED_HEADERS = ("Accept", "Content-Type", "Twirp-Version")


class ScanClient(Protocol):
    """Transport that sends a scan request to a server."""

    def scan(self, headers: dict[str, list[str]] | None, request: pb.ScanRequest) -> pb.ScanResponse:
        """Send ``request`` with ``headers`` and return the server's response."""
        ...


def with_custom_headers(
    headers: dict[str, list[str]] | None, custom_headers: Headers
) -> dict[str, list[str]] | None:
    """Return the request headers to use with ``custom_headers`` attached.

    If ``custom_headers`` tries to set a header reserved by the transport, a
    warning is logged and ``headers`` is returned unchanged.
    """
    reserved = {name.lower(): name for name in _RESERVED_HEADERS}
    for key in custom_headers:
        if key.lower() in reserved:
            logger.warning(
                "twirp error setting headers: provided header cannot set %s",
                reserved[key.lower()],
            )
            return headers
    return {key: list(values) for key, values in custom_headers.items()}


class RemoteScanner:
    """Scans artifacts by asking a remote scan server."""

    def __init__(
        self,
        custom_headers: Headers,
        client: ScanClient,
        *,
        max_retries: int = MAX_RETRIES,
        retry_interval: float = 0.5,
    ) -> None:
        self._custom_headers = {key: list(values) for key, values in custom_headers.items()}
        self._client = client
        self._max_retries = max_retries
        self._retry_interval = retry_interval

    def scan(
        self,
        target: str,
        artifact_key: str,
        blob_keys: Sequence[str],
        options: ScanOptions,
    ) -> tuple[list[Result], OS | None]:
        """Scan remotely and return the results and the detected OS."""
        headers = with_custom_headers(None, self._custom_headers)
        request = pb.ScanRequest(
            target=target,
            artifact_id=artifact_key,
            blob_ids=list(blob_keys),
            options=pb.ScanOptions(
                vuln_type=list(options.vuln_type),
                security_checks=list(options.security_checks),
                list_all_packages=options.list_all_packages,
            ),
        )
        try:
            response = retry(
                lambda: self._client.scan(headers, request),
                max_retries=self._max_retries,
                initial_interval=self._retry_interval,
            )
        except Exception as err:
            raise ScanError(f"failed to detect vulnerabilities via RPC: {err}") from err

        return from_rpc_results(response.results), from_rpc_os(response.os)