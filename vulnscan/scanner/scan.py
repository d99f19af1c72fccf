"""Scanning of an artifact through a driver, producing a report."""

from __future__ import annotations

import logging
from typing import Protocol, Sequence

from vulnscan.types import (
    ARTIFACT_CONTAINER_IMAGE,
    OS,
    REPORT_SCHEMA_VERSION,
    ArtifactReference,
    Layer,
    Metadata,
    Report,
    Result,
    ScanError,
    ScanOptions,
)

logger = logging.getLogger(__name__)


class Driver(Protocol):
    """Runs the actual scan, locally or through a remote server."""

    def scan(
        self,
        target: str,
        artifact_key: str,
        blob_keys: Sequence[str],
        options: ScanOptions,
    ) -> tuple[list[Result], OS | None]:
        """Return the results and the detected OS."""
        ...


class Artifact(Protocol):
    """Something that can be inspected into a reference of cached blobs."""

    def inspect(self) -> ArtifactReference:
        """Analyse the artifact and return its reference."""
        ...


def _remove_layers(results: list[Result]) -> None:
    for result in results:
        for pkg in result.packages:
            pkg.layer = Layer()
        for vuln in result.vulnerabilities:
            vuln.layer = Layer()
        for misconf in result.misconfigurations:
            misconf.layer = Layer()


class Scanner:
    """Inspects an artifact and scans it with a driver."""

    def __init__(self, driver: Driver, artifact: Artifact) -> None:
        self._driver = driver
        self._artifact = artifact

    def scan_artifact(self, options: ScanOptions) -> Report:
        """Inspect and scan the artifact, returning the report."""
        try:
            ref = self._artifact.inspect()
        except Exception as err:
            raise ScanError(f"failed analysis: {err}") from err

        try:
            results, os_found = self._driver.scan(ref.name, ref.id, ref.blob_ids, options)
        except Exception as err:
            raise ScanError(f"scan failed: {err}") from err

        if os_found is not None and os_found.eosl:
            logger.warning(
                "This OS version is no longer supported by the distribution: %s %s",
                os_found.family,
                os_found.name,
            )
            logger.warning(
                "The vulnerability detection may be insufficient because "
                "security updates are not provided"
            )

        # Layers only make sense for container images.
        if ref.type != ARTIFACT_CONTAINER_IMAGE:
            _remove_layers(results)

        meta = ref.image_metadata
        return Report(
            schema_version=REPORT_SCHEMA_VERSION,
            artifact_name=ref.name,
            artifact_type=ref.type,
            metadata=Metadata(
                os=os_found,
                image_id=meta.id,
                diff_ids=list(meta.diff_ids),
                repo_tags=list(meta.repo_tags),
                repo_digests=list(meta.repo_digests),
                image_config=meta.config_file,
            ),
            results=results,
        )