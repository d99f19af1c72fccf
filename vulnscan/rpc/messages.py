"""Messages exchanged between the scan client, the scan server and the cache."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import IntEnum
from typing import Any

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
# Range allowed for timestamps on the wire: 0001-01-01 to 9999-12-31T23:59:59.
_MIN_SECONDS = -62135596800
_MAX_SECONDS = 253402300799


class Severity(IntEnum):
    """Severity as carried in messages."""

    UNKNOWN = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Timestamp:
    """A point in time as seconds and nanoseconds since the Unix epoch (UTC)."""

    seconds: int = 0
    nanos: int = 0

    @classmethod
    def from_datetime(cls, value: datetime) -> Timestamp:
        """Build a timestamp from a datetime; naive values are taken as UTC."""
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        delta = value - _EPOCH
        seconds = delta.days * 86400 + delta.seconds
        return cls(seconds=seconds, nanos=delta.microseconds * 1000)

    def to_datetime(self) -> datetime:
        """Return the timestamp as an aware UTC datetime.

        Raises ValueError when the timestamp is outside the valid range.
        """
        if not 0 <= self.nanos < 1_000_000_000:
            raise ValueError(f"timestamp: {self} has out-of-range nanos")
        if not _MIN_SECONDS <= self.seconds <= _MAX_SECONDS:
            raise ValueError(f"timestamp: {self} is out of range")
        return _EPOCH + timedelta(seconds=self.seconds, microseconds=self.nanos // 1000)


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
    layer: Layer | None = None


@dataclass
class Library:
    name: str = ""
    version: str = ""
    license: str = ""


@dataclass
class CVSS:
    v2_vector: str = ""
    v3_vector: str = ""
    v2_score: float = 0.0
    v3_score: float = 0.0


@dataclass
class Vulnerability:
    vulnerability_id: str = ""
    pkg_name: str = ""
    installed_version: str = ""
    fixed_version: str = ""
    title: str = ""
    description: str = ""
    severity: Severity = Severity.UNKNOWN
    references: list[str] = field(default_factory=list)
    layer: Layer | None = None
    cvss: dict[str, CVSS] = field(default_factory=dict)
    severity_source: str = ""
    cwe_ids: list[str] = field(default_factory=list)
    primary_url: str = ""
    last_modified_date: Timestamp | None = None
    published_date: Timestamp | None = None
    custom_advisory_data: Any = None
    custom_vuln_data: Any = None


@dataclass
class DetectedMisconfiguration:
    type: str = ""
    id: str = ""
    title: str = ""
    description: str = ""
    message: str = ""
    namespace: str = ""
    resolution: str = ""
    severity: Severity = Severity.UNKNOWN
    primary_url: str = ""
    references: list[str] = field(default_factory=list)
    status: str = ""
    layer: Layer | None = None


@dataclass
class MisconfResult:
    namespace: str = ""
    message: str = ""
    id: str = ""
    type: str = ""
    title: str = ""
    severity: str = ""


@dataclass
class Misconfiguration:
    file_type: str = ""
    file_path: str = ""
    successes: list[MisconfResult] = field(default_factory=list)
    warnings: list[MisconfResult] = field(default_factory=list)
    failures: list[MisconfResult] = field(default_factory=list)
    exceptions: list[MisconfResult] = field(default_factory=list)


@dataclass
class PackageInfo:
    file_path: str = ""
    packages: list[Package] = field(default_factory=list)


@dataclass
class Application:
    type: str = ""
    file_path: str = ""
    libraries: list[Library] = field(default_factory=list)


@dataclass
class ArtifactInfo:
    schema_version: int = 0
    architecture: str = ""
    created: Timestamp | None = None
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
class PutArtifactRequest:
    artifact_id: str = ""
    artifact_info: ArtifactInfo | None = None


@dataclass
class PutBlobRequest:
    diff_id: str = ""
    blob_info: BlobInfo | None = None


@dataclass
class MissingBlobsRequest:
    artifact_id: str = ""
    blob_ids: list[str] = field(default_factory=list)


@dataclass
class MissingBlobsResponse:
    missing_artifact: bool = False
    missing_blob_ids: list[str] = field(default_factory=list)


@dataclass
class ScanOptions:
    vuln_type: list[str] = field(default_factory=list)
    security_checks: list[str] = field(default_factory=list)
    list_all_packages: bool = False


@dataclass
class ScanRequest:
    target: str = ""
    artifact_id: str = ""
    blob_ids: list[str] = field(default_factory=list)
    options: ScanOptions | None = None


@dataclass
class Result:
    target: str = ""
    vulnerabilities: list[Vulnerability] = field(default_factory=list)
    misconfigurations: list[DetectedMisconfiguration] = field(default_factory=list)
    result_class: str = ""
    type: str = ""
    packages: list[Package] = field(default_factory=list)


@dataclass
class ScanResponse:
    os: OS | None = None
    results: list[Result] = field(default_factory=list)