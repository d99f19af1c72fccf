"""Core data types shared by the scanner, the RPC layer and reports."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum, IntEnum
from typing import Any, Mapping


class ScanError(Exception):
    """Raised when a scan step fails; the cause is chained."""


class Severity(IntEnum):
    """Vulnerability severity, ordered from least to most severe."""

    UNKNOWN = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4

    def __str__(self) -> str:
        return self.name


SEVERITY_NAMES = [s.name for s in Severity]


def new_severity(name: str) -> Severity:
    """Return the severity with the given name; raise ValueError if unknown."""
    try:
        return Severity[name]
    except KeyError:
        raise ValueError(f"unknown severity: {name}") from None


def _severity_or_unknown(name: str) -> Severity:
    try:
        return new_severity(name)
    except ValueError:
        return Severity.UNKNOWN


def compare_severity_strings(a: str, b: str) -> int:
    """Return a positive number when ``b`` is more severe than ``a``."""
    return int(_severity_or_unknown(b)) - int(_severity_or_unknown(a))


ARTIFACT_CONTAINER_IMAGE = "container_image"
ARTIFACT_FILESYSTEM = "filesystem"
ARTIFACT_REMOTE_REPOSITORY = "repository"

ARTIFACT_JSON_SCHEMA_VERSION = 1
BLOB_JSON_SCHEMA_VERSION = 2
REPORT_SCHEMA_VERSION = 2


@dataclass
class Layer:
    digest: str = ""
    diff_id: str = ""


@dataclass
class OS:
    family: str = ""
    name: str = ""
    eosl: bool = False


@dataclass
class Package:
    name: str = ""
    version: str = ""
    release: str = ""
    epoch: int = 0
    arch: str = ""
    src_name: str = ""
    src_version: str = ""
    src_release: str = ""
    src_epoch: int = 0
    license: str = ""
    layer: Layer = field(default_factory=Layer)


@dataclass
class Library:
    name: str = ""
    version: str = ""
    license: str = ""


@dataclass
class Application:
    type: str = ""
    file_path: str = ""
    libraries: list[Package] = field(default_factory=list)


@dataclass
class PackageInfo:
    file_path: str = ""
    packages: list[Package] = field(default_factory=list)


@dataclass
class PolicyMetadata:
    id: str = ""
    type: str = ""
    title: str = ""
    description: str = ""
    severity: str = ""
    recommended_actions: str = ""
    references: list[str] = field(default_factory=list)


@dataclass
class IacMetadata:
    resource: str = ""
    start_line: int = 0
    end_line: int = 0


@dataclass
class MisconfResult:
    namespace: str = ""
    query: str = ""
    message: str = ""
    policy_metadata: PolicyMetadata = field(default_factory=PolicyMetadata)
    iac_metadata: IacMetadata = field(default_factory=IacMetadata)
    traces: list[str] = field(default_factory=list)


@dataclass
class Misconfiguration:
    file_type: str = ""
    file_path: str = ""
    successes: list[MisconfResult] = field(default_factory=list)
    warnings: list[MisconfResult] = field(default_factory=list)
    failures: list[MisconfResult] = field(default_factory=list)
    exceptions: list[MisconfResult] = field(default_factory=list)
    layer: Layer = field(default_factory=Layer)


@dataclass
class ArtifactInfo:
    schema_version: int = 0
    architecture: str = ""
    created: datetime | None = None
    docker_version: str = ""
    os: str = ""
    history_packages: list[Package] = field(default_factory=list)


@dataclass
class BlobInfo:
    schema_version: int = 0
    digest: str = ""
    diff_id: str = ""
    os: OS | None = None
    package_infos: list[PackageInfo] = field(default_factory=list)
    applications: list[Application] = field(default_factory=list)
    misconfigurations: list[Misconfiguration] = field(default_factory=list)
    opaque_dirs: list[str] = field(default_factory=list)
    whiteout_files: list[str] = field(default_factory=list)


@dataclass
class ArtifactDetail:
    os: OS | None = None
    packages: list[Package] = field(default_factory=list)
    applications: list[Application] = field(default_factory=list)
    misconfigurations: list[Misconfiguration] = field(default_factory=list)
    history_packages: list[Package] = field(default_factory=list)


@dataclass
class ImageMetadata:
    id: str = ""
    diff_ids: list[str] = field(default_factory=list)
    repo_tags: list[str] = field(default_factory=list)
    repo_digests: list[str] = field(default_factory=list)
    config_file: dict[str, Any] | None = None


@dataclass
class ArtifactReference:
    name: str = ""
    type: str = ""
    id: str = ""
    blob_ids: list[str] = field(default_factory=list)
    image_metadata: ImageMetadata = field(default_factory=ImageMetadata)


@dataclass
class CVSS:
    v2_vector: str = ""
    v3_vector: str = ""
    v2_score: float = 0.0
    v3_score: float = 0.0


class MisconfStatus(str, Enum):
    """Outcome of a configuration check."""

    PASSED = "PASS"
    FAILURE = "FAIL"
    EXCEPTION = "EXCEPTION"

    def __str__(self) -> str:
        return self.value


@dataclass
class DetectedMisconfiguration:
    type: str = ""
    id: str = ""
    title: str = ""
    description: str = ""
    message: str = ""
    namespace: str = ""
    query: str = ""
    resolution: str = ""
    severity: str = ""
    primary_url: str = ""
    references: list[str] = field(default_factory=list)
    status: MisconfStatus | None = None
    layer: Layer = field(default_factory=Layer)
    iac_metadata: IacMetadata = field(default_factory=IacMetadata)
    traces: list[str] = field(default_factory=list)


@dataclass
class DetectedVulnerability:
    vulnerability_id: str = ""
    vendor_ids: list[str] = field(default_factory=list)
    pkg_name: str = ""
    pkg_path: str = ""
    installed_version: str = ""
    fixed_version: str = ""
    layer: Layer = field(default_factory=Layer)
    severity_source: str = ""
    primary_url: str = ""
    custom: Any = None
    # Vulnerability details
    title: str = ""
    description: str = ""
    severity: str = ""
    cwe_ids: list[str] = field(default_factory=list)
    vendor_severity: dict[str, Severity] | None = None
    cvss: dict[str, CVSS] = field(default_factory=dict)
    references: list[str] = field(default_factory=list)
    published_date: datetime | None = None
    last_modified_date: datetime | None = None
    vuln_custom: Any = None


def sort_by_severity(vulns: list[DetectedVulnerability]) -> list[DetectedVulnerability]:
    """Sort by package name, installed version, descending severity and ID."""
    return sorted(
        vulns,
        key=lambda v: (
            v.pkg_name,
            v.installed_version,
            -int(_severity_or_unknown(v.severity)),
            v.vulnerability_id,
        ),
    )


class ResultClass(str, Enum):
    OS_PKG = "os-pkgs"
    LANG_PKG = "lang-pkgs"
    CONFIG = "config"

    def __str__(self) -> str:
        return self.value


@dataclass
class Result:
    target: str = ""
    result_class: ResultClass | None = None
    type: str = ""
    packages: list[Package] = field(default_factory=list)
    vulnerabilities: list[DetectedVulnerability] = field(default_factory=list)
    misconfigurations: list[DetectedMisconfiguration] = field(default_factory=list)


@dataclass
class Metadata:
    os: OS | None = None
    image_id: str = ""
    diff_ids: list[str] = field(default_factory=list)
    repo_tags: list[str] = field(default_factory=list)
    repo_digests: list[str] = field(default_factory=list)
    image_config: dict[str, Any] | None = None


@dataclass
class Report:
    schema_version: int = REPORT_SCHEMA_VERSION
    artifact_name: str = ""
    artifact_type: str = ""
    metadata: Metadata = field(default_factory=Metadata)
    results: list[Result] = field(default_factory=list)


@dataclass
class ScanOptions:
    vuln_type: list[str] = field(default_factory=list)
    security_checks: list[str] = field(default_factory=list)
    scan_removed_packages: bool = False
    list_all_packages: bool = False


VULN_TYPE_UNKNOWN = "unknown"
VULN_TYPE_OS = "os"
VULN_TYPE_LIBRARY = "library"

SECURITY_CHECK_UNKNOWN = "unknown"
SECURITY_CHECK_VULNERABILITY = "vuln"
SECURITY_CHECK_CONFIG = "config"

_VULN_TYPES = (VULN_TYPE_OS, VULN_TYPE_LIBRARY)
_SECURITY_CHECKS = (SECURITY_CHECK_VULNERABILITY, SECURITY_CHECK_CONFIG)


def new_vuln_type(s: str) -> str:
    """Return ``s`` if it is a known vulnerability type, else "unknown"."""
    return s if s in _VULN_TYPES else VULN_TYPE_UNKNOWN


def new_security_check(s: str) -> str:
    """Return ``s`` if it is a known security check, else "unknown"."""
    return s if s in _SECURITY_CHECKS else SECURITY_CHECK_UNKNOWN


_TRUE_STRINGS = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE_STRINGS = {"0", "f", "F", "FALSE", "false", "False"}


def _parse_bool(key: str, value: str) -> bool:
    if value in _TRUE_STRINGS:
        return True
    if value in _FALSE_STRINGS:
        return False
    raise ValueError(f'env: parse error on field "{key}": invalid boolean {value!r}')


@dataclass
class DockerConfig:
    """Registry settings read from the environment."""

    user_name: str = ""
    password: str = ""
    registry_token: str = ""
    insecure: bool = False
    non_ssl: bool = False

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> DockerConfig:
        env = os.environ if environ is None else environ

        def flag(key: str) -> bool:
            value = env.get(key, "")
            return _parse_bool(key, value) if value else False

        return cls(
            user_name=env.get("TRIVY_USERNAME", ""),
            password=env.get("TRIVY_PASSWORD", ""),
            registry_token=env.get("TRIVY_REGISTRY_TOKEN", ""),
            insecure=flag("TRIVY_INSECURE"),
            non_ssl=flag("TRIVY_NON_SSL"),
        )


@dataclass
class DockerOption:
    user_name: str = ""
    password: str = ""
    registry_token: str = ""
    timeout: timedelta = field(default_factory=timedelta)
    insecure_skip_tls_verify: bool = False
    non_ssl: bool = False


def get_docker_option(
    timeout: timedelta, environ: Mapping[str, str] | None = None
) -> DockerOption:
    """Build registry options from the environment and the given timeout."""
    try:
        cfg = DockerConfig.from_env(environ)
    except ValueError as err:
        raise ScanError(f"unable to parse environment variables: {err}") from err
    return DockerOption(
        user_name=cfg.user_name,
        password=cfg.password,
        registry_token=cfg.registry_token,
        timeout=timeout,
        insecure_skip_tls_verify=cfg.insecure,
        non_ssl=cfg.non_ssl,
    )