"""Scanning of an artifact's merged layers for vulnerabilities and misconfigurations."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Protocol, Sequence

from vulnscan.types import (
    SECURITY_CHECK_CONFIG,
    SECURITY_CHECK_VULNERABILITY,
    SEVERITY_NAMES,
    VULN_TYPE_LIBRARY,
    VULN_TYPE_OS,
    Application,
    ArtifactDetail,
    DetectedMisconfiguration,
    DetectedVulnerability,
    IacMetadata,
    Layer,
    MisconfResult,
    MisconfStatus,
    Misconfiguration,
    OS,
    Package,
    Result,
    ResultClass,
    ScanError,
    ScanOptions,
    Severity,
    new_severity,
)

logger = logging.getLogger(__name__)

# Targets used for language packages found without a file path.
PKG_TARGETS = {
    "python-pkg": "Python",
    "gemspec": "Ruby",
    "node-pkg": "Node.js",
    "jar": "Java",
}

_APPSHIELD_URL = "https://avd.aquasec.com/appshield/"
_TFSEC_DOCS_PREFIX = "https://tfsec.dev/docs/"


class UnknownOSError(Exception):
    """The OS of the artifact was not detected; the rest of the detail is usable."""

    def __init__(self, detail: ArtifactDetail | None = None, message: str = "unknown OS") -> None:
        super().__init__(message)
        self.detail = detail if detail is not None else ArtifactDetail()


class NoPackagesDetectedError(Exception):
    """No OS packages were found; the rest of the detail is usable."""

    def __init__(
        self, detail: ArtifactDetail | None = None, message: str = "no packages detected"
    ) -> None:
        super().__init__(message)
        self.detail = detail if detail is not None else ArtifactDetail()


class UnsupportedOSError(Exception):
    """The OS family is not supported by the OS package detector."""


class Applier(Protocol):
    """Merges the layers of an artifact into a single detail."""

    def apply_layers(self, artifact_id: str, blob_ids: Sequence[str]) -> ArtifactDetail:
        """Return the merged detail; may raise UnknownOSError or NoPackagesDetectedError."""
        ...


class OspkgDetector(Protocol):
    """Detects vulnerabilities in OS packages."""

    def detect(
        self,
        image_name: str,
        os_family: str,
        os_name: str,
        created: datetime | None,
        pkgs: Sequence[Package],
    ) -> tuple[list[DetectedVulnerability], bool]:
        """Return the vulnerabilities and whether the OS is end of life."""
        ...


class LibraryDetector(Protocol):
    """Detects vulnerabilities in language-specific libraries."""

    def detect(self, lib_type: str, libraries: Sequence[Package]) -> list[DetectedVulnerability]:
        """Return the vulnerabilities found in ``libraries`` of ``lib_type``."""
        ...


def _merge_packages(pkgs: list[Package], from_history: list[Package]) -> list[Package]:
    # Installed packages take priority over those found in the image history.
    names = {p.name for p in pkgs}
    return pkgs + [p for p in from_history if p.name not in names]


def _to_detected_misconfiguration(
    res: MisconfResult,
    default_severity: Severity,
    status: MisconfStatus,
    layer: Layer,
) -> DetectedMisconfiguration:
    meta = res.policy_metadata
    try:
        severity = new_severity(meta.severity)
    except ValueError:
        logger.warning("severity must be %s, but %s", SEVERITY_NAMES, meta.severity)
        severity = default_severity

    message = res.message.strip() or "No issues found"

    references = list(meta.references)
    primary_url = ""
    if res.namespace.startswith("appshield."):
        primary_url = _APPSHIELD_URL + meta.id.lower()
        references.append(primary_url)
    elif "tfsec" in meta.type:
        primary_url = next(
            (ref for ref in references if ref.startswith(_TFSEC_DOCS_PREFIX)), ""
        )

    return DetectedMisconfiguration(
        id=meta.id,
        type=meta.type,
        title=meta.title,
        description=meta.description,
        message=message,
        resolution=meta.recommended_actions,
        namespace=res.namespace,
        query=res.query,
        severity=severity.name,
        primary_url=primary_url,
        references=references,
        status=status,
        layer=layer,
        traces=list(res.traces),
        iac_metadata=IacMetadata(
            resource=res.iac_metadata.resource,
            start_line=res.iac_metadata.start_line,
            end_line=res.iac_metadata.end_line,
        ),
    )


class LocalScanner:
    """Scans artifacts using locally available layer data and detectors."""

    def __init__(
        self,
        applier: Applier,
        ospkg_detector: OspkgDetector,
        library_detector: LibraryDetector,
    ) -> None:
        self._applier = applier
        self._ospkg_detector = ospkg_detector
        self._library_detector = library_detector

    def scan(
        self,
        target: str,
        artifact_key: str,
        blob_keys: Sequence[str],
        options: ScanOptions,
    ) -> tuple[list[Result], OS | None]:
        """Scan the artifact and return the results and the detected OS."""
        try:
            detail = self._applier.apply_layers(artifact_key, blob_keys)
        except UnknownOSError as err:
            logger.debug("OS is not detected and vulnerabilities in OS packages are not detected.")
            detail = err.detail
        except NoPackagesDetectedError as err:
            logger.warning(
                "No OS package is detected. Make sure you haven't deleted any files "
                "that contain information about the installed packages."
            )
            logger.warning('e.g. files under "/lib/apk/db/", "/var/lib/dpkg/" and "/var/lib/rpm"')
            detail = err.detail
        except Exception as err:
            raise ScanError(f"failed to apply layers: {err}") from err

        results: list[Result] = []

        if SECURITY_CHECK_VULNERABILITY in options.security_checks:
            try:
                vuln_results, eosl = self._check_vulnerabilities(target, detail, options)
            except ScanError as err:
                raise ScanError(f"failed to detect vulnerabilities: {err}") from err
            if detail.os is not None:
                detail.os.eosl = eosl
            results.extend(vuln_results)

        if SECURITY_CHECK_CONFIG in options.security_checks:
            results.extend(self._misconfs_to_results(detail.misconfigurations))

        return results, detail.os

    def _check_vulnerabilities(
        self, target: str, detail: ArtifactDetail, options: ScanOptions
    ) -> tuple[list[Result], bool]:
        results: list[Result] = []
        eosl = False

        if VULN_TYPE_OS in options.vuln_type:
            try:
                result, eosl = self._scan_os_packages(target, detail, options)
            except ScanError as err:
                raise ScanError(f"unable to scan OS packages: {err}") from err
            if result is not None:
                results.append(result)

        if VULN_TYPE_LIBRARY in options.vuln_type:
            try:
                results.extend(self._scan_libraries(detail.applications, options))
            except ScanError as err:
                raise ScanError(f"failed to scan application libraries: {err}") from err

        return results, eosl

    def _scan_os_packages(
        self, target: str, detail: ArtifactDetail, options: ScanOptions
    ) -> tuple[Result | None, bool]:
        if detail.os is None:
            logger.debug("Detected OS: unknown")
            return None, False
        logger.info("Detected OS: %s", detail.os.family)

        pkgs = list(detail.packages)
        if options.scan_removed_packages:
            pkgs = _merge_packages(pkgs, detail.history_packages)

        try:
            result, eosl = self._detect_os_vulnerabilities(
                target, detail.os.family, detail.os.name, pkgs
            )
        except ScanError as err:
            raise ScanError(f"failed to scan OS packages: {err}") from err
        if result is None:
            return None, eosl

        if options.list_all_packages:
            result.packages = sorted(pkgs, key=lambda p: p.name)
        return result, eosl

    def _detect_os_vulnerabilities(
        self, target: str, os_family: str, os_name: str, pkgs: list[Package]
    ) -> tuple[Result | None, bool]:
        if not os_family:
            return None, False
        try:
            vulns, eosl = self._ospkg_detector.detect("", os_family, os_name, None, pkgs)
        except UnsupportedOSError:
            return None, False
        except Exception as err:
            raise ScanError(f"failed vulnerability detection of OS packages: {err}") from err

        result = Result(
            target=f"{target} ({os_family} {os_name})",
            vulnerabilities=list(vulns),
            result_class=ResultClass.OS_PKG,
            type=os_family,
        )
        return result, eosl

    def _scan_libraries(
        self, apps: list[Application], options: ScanOptions
    ) -> list[Result]:
        logger.info("Number of language-specific files: %d", len(apps))
        results: list[Result] = []
        printed_types: set[str] = set()
        for app in apps:
            if not app.libraries:
                continue
            if app.type not in printed_types:
                logger.info("Detecting %s vulnerabilities...", app.type)
                printed_types.add(app.type)

            logger.debug(
                "Detecting library vulnerabilities, type: %s, path: %s", app.type, app.file_path
            )
            try:
                vulns = self._library_detector.detect(app.type, app.libraries)
            except Exception as err:
                raise ScanError(f"failed vulnerability detection of libraries: {err}") from err

            target = app.file_path
            if not target and app.type in PKG_TARGETS:
                target = PKG_TARGETS[app.type]

            result = Result(
                target=target,
                vulnerabilities=list(vulns),
                result_class=ResultClass.LANG_PKG,
                type=app.type,
            )
            if options.list_all_packages:
                result.packages = list(app.libraries)
            results.append(result)

        results.sort(key=lambda r: r.target)
        return results

    def _misconfs_to_results(self, misconfs: list[Misconfiguration]) -> list[Result]:
        logger.info("Detected config files: %d", len(misconfs))
        results: list[Result] = []
        for misconf in misconfs:
            logger.debug("Scanned config file: %s", misconf.file_path)
            groups = (
                (misconf.failures, Severity.CRITICAL, MisconfStatus.FAILURE),
                (misconf.warnings, Severity.MEDIUM, MisconfStatus.FAILURE),
                (misconf.successes, Severity.UNKNOWN, MisconfStatus.PASSED),
                (misconf.exceptions, Severity.UNKNOWN, MisconfStatus.EXCEPTION),
            )
            detected = [
                _to_detected_misconfiguration(res, severity, status, misconf.layer)
                for items, severity, status in groups
                for res in items
            ]
            results.append(
                Result(
                    target=misconf.file_path,
                    result_class=ResultClass.CONFIG,
                    type=misconf.file_type,
                    misconfigurations=detected,
                )
            )
        results.sort(key=lambda r: r.target)
        return results