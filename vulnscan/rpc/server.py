"""Server side of remote scanning: the scan service and the cache service."""

from __future__ import annotations

import logging
from typing import Protocol, Sequence

from vulnscan.rpc import messages as pb
from vulnscan.rpc.convert import (
    from_rpc_put_artifact_request,
    from_rpc_put_blob_request,
    to_rpc_scan_response,
)
from vulnscan.scanner.scan import Driver
from vulnscan.types import (
    ArtifactInfo,
    BlobInfo,
    DetectedVulnerability,
    ScanError,
    ScanOptions,
)

logger = logging.getLogger(__name__)


class VulnerabilityFiller(Protocol):
    """Fills detected vulnerabilities with details from the vulnerability database."""

    def fill_vulnerability_info(
        self, vulns: list[DetectedVulnerability], result_type: str
    ) -> None:
        """Complete ``vulns`` in place."""
        ...


class ArtifactCache(Protocol):
    """Storage for artifact and blob information."""

    def put_artifact(self, artifact_id: str, info: ArtifactInfo) -> None:
        """Store artifact information."""
        ...

    def put_blob(self, blob_id: str, info: BlobInfo) -> None:
        """Store blob information."""
        ...

    def missing_blobs(
        self, artifact_id: str, blob_ids: Sequence[str]
    ) -> tuple[bool, list[str]]:
        """Return whether the artifact is missing and which blobs are missing."""
        ...


class ScanServer:
    """Handles scan requests with a local scanner."""

    def __init__(self, local_scanner: Driver, result_client: VulnerabilityFiller) -> None:
        self._local_scanner = local_scanner
        self._result_client = result_client

    def scan(self, request: pb.ScanRequest) -> pb.ScanResponse:
        """Scan the requested artifact and return the response."""
        rpc_options = request.options or pb.ScanOptions()
        options = ScanOptions(
            vuln_type=list(rpc_options.vuln_type),
            security_checks=list(rpc_options.security_checks),
            list_all_packages=rpc_options.list_all_packages,
        )
        try:
            results, os_found = self._local_scanner.scan(
                request.target, request.artifact_id, request.blob_ids, options
            )
        except Exception as err:
            raise ScanError(f"failed scan, {request.target}: {err}") from err

        for result in results:
            self._result_client.fill_vulnerability_info(result.vulnerabilities, result.type)
        return to_rpc_scan_response(results, os_found)


class CacheServer:
    """Handles cache requests by storing into an artifact cache."""

    def __init__(self, cache: ArtifactCache) -> None:
        self._cache = cache

    def put_artifact(self, request: pb.PutArtifactRequest) -> None:
        """Store the artifact information carried by ``request``."""
        if request.artifact_info is None:
            raise ScanError("empty image info")
        info = from_rpc_put_artifact_request(request)
        try:
            self._cache.put_artifact(request.artifact_id, info)
        except Exception as err:
            raise ScanError(f"unable to store image info in cache: {err}") from err

    def put_blob(self, request: pb.PutBlobRequest) -> None:
        """Store the blob information carried by ``request``."""
        if request.blob_info is None:
            raise ScanError("empty layer info")
        info = from_rpc_put_blob_request(request)
        try:
            self._cache.put_blob(request.diff_id, info)
        except Exception as err:
            raise ScanError(f"unable to store layer info in cache: {err}") from err

    def missing_blobs(self, request: pb.MissingBlobsRequest) -> pb.MissingBlobsResponse:
        """Return which of the requested artifact and blobs are not cached."""
        try:
            missing_artifact, blob_ids = self._cache.missing_blobs(
                request.artifact_id, request.blob_ids
            )
        except Exception as err:
            raise ScanError(f"failed to get missing blobs: {err}") from err
        return pb.MissingBlobsResponse(
            missing_artifact=missing_artifact, missing_blob_ids=list(blob_ids)
        )