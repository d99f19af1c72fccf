"""Conversion between core types and RPC messages."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from vulnscan.rpc import messages as pb
from vulnscan.types import (
    BLOB_JSON_SCHEMA_VERSION,
    CVSS,
    OS,
    Application,
    ArtifactInfo,
    BlobInfo,
    DetectedMisconfiguration,
    DetectedVulnerability,
    Layer,
    Library,
    MisconfResult,
    MisconfStatus,
    Misconfiguration,
    Package,
    PackageInfo,
    PolicyMetadata,
    Result,
    ResultClass,
    Severity,
    new_severity,
)

logger = logging.getLogger(__name__)


def _to_rpc_severity(name: str) -> pb.Severity:
    try:
        severity = new_severity(name)
    except ValueError as err:
        logger.warning("%s", err)
        severity = Severity.UNKNOWN
    return pb.Severity(int(severity))


def _json_value(value: Any) -> Any:
    if value is None or isinstance(value, (bool, str)):
        return value
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, Mapping):
        out = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise TypeError(f"invalid key type: {type(key).__name__}")
            out[key] = _json_value(item)
        return out
    if isinstance(value, (list, tuple)):
        return [_json_value(item) for item in value]
    raise TypeError(f"invalid type: {type(value).__name__}")


def _to_struct_value(value: Any) -> Any:
    """Return a JSON-like copy of ``value``, or None if it cannot be carried."""
    try:
        return _json_value(value)
    except TypeError:
        return None


def _to_timestamp(value) -> pb.Timestamp | None:
    return None if value is None else pb.Timestamp.from_datetime(value)


def _from_timestamp(value: pb.Timestamp | None):
    return None if value is None else value.to_datetime()


def _result_class(value: str) -> ResultClass | None:
    if not value:
        return None
    try:
        return ResultClass(value)
    except ValueError:
        logger.warning("unknown result class: %s", value)
        return None


def _misconf_status(value: str) -> MisconfStatus | None:
    if not value:
        return None
    try:
        return MisconfStatus(value)
    except ValueError:
        logger.warning("unknown misconfiguration status: %s", value)
        return None


def to_rpc_layer(layer: Layer) -> pb.Layer:
    """Return the message form of a layer."""
    return pb.Layer(digest=layer.digest, diff_id=layer.diff_id)


def from_rpc_layer(rpc_layer: pb.Layer | None) -> Layer:
    """Return the layer of a message; an absent layer becomes an empty one."""
    if rpc_layer is None:
        return Layer()
    return Layer(digest=rpc_layer.digest, diff_id=rpc_layer.diff_id)


def to_rpc_packages(pkgs: Iterable[Package]) -> list[pb.Package]:
    """Return the message form of packages."""
    return [
        pb.Package(
            name=p.name,
            version=p.version,
            release=p.release,
            epoch=p.epoch,
            arch=p.arch,
            src_name=p.src_name,
            src_version=p.src_version,
            src_release=p.src_release,
            src_epoch=p.src_epoch,
            license=p.license,
            layer=to_rpc_layer(p.layer),
        )
        for p in pkgs
    ]


def from_rpc_packages(rpc_pkgs: Iterable[pb.Package]) -> list[Package]:
    """Return packages from their message form."""
    return [
        Package(
            name=p.name,
            version=p.version,
            release=p.release,
            epoch=p.epoch,
            arch=p.arch,
            src_name=p.src_name,
            src_version=p.src_version,
            src_release=p.src_release,
            src_epoch=p.src_epoch,
            license=p.license,
            layer=from_rpc_layer(p.layer),
        )
        for p in rpc_pkgs
    ]


def from_rpc_libraries(rpc_libs: Iterable[pb.Library]) -> list[Package]:
    """Return library messages as packages."""
    return [Package(name=lib.name, version=lib.version, license=lib.license) for lib in rpc_libs]


def to_rpc_libraries(libs: Iterable[Library]) -> list[pb.Library]:
    """Return the message form of libraries."""
    return [pb.Library(name=lib.name, version=lib.version, license=lib.license) for lib in libs]


def to_rpc_vulnerabilities(vulns: Iterable[DetectedVulnerability]) -> list[pb.Vulnerability]:
    """Return the message form of detected vulnerabilities."""
    rpc_vulns = []
    for v in vulns:
        cvss = {
            vendor: pb.CVSS(
                v2_vector=c.v2_vector,
                v3_vector=c.v3_vector,
                v2_score=c.v2_score,
                v3_score=c.v3_score,
            )
            for vendor, c in v.cvss.items()
        }
        rpc_vulns.append(
            pb.Vulnerability(
                vulnerability_id=v.vulnerability_id,
                pkg_name=v.pkg_name,
                installed_version=v.installed_version,
                fixed_version=v.fixed_version,
                title=v.title,
                description=v.description,
                severity=_to_rpc_severity(v.severity),
                references=list(v.references),
                layer=to_rpc_layer(v.layer),
                cvss=cvss,
                severity_source=v.severity_source,
                cwe_ids=list(v.cwe_ids),
                primary_url=v.primary_url,
                last_modified_date=_to_timestamp(v.last_modified_date),
                published_date=_to_timestamp(v.published_date),
                custom_advisory_data=None if v.custom is None else _to_struct_value(v.custom),
                custom_vuln_data=None if v.vuln_custom is None else _to_struct_value(v.vuln_custom),
            )
        )
    return rpc_vulns


def to_rpc_misconfigurations(
    misconfs: Iterable[DetectedMisconfiguration],
) -> list[pb.DetectedMisconfiguration]:
    """Return the message form of detected misconfigurations."""
    return [
        pb.DetectedMisconfiguration(
            type=m.type,
            id=m.id,
            title=m.title,
            description=m.description,
            message=m.message,
            namespace=m.namespace,
            resolution=m.resolution,
            severity=_to_rpc_severity(m.severity),
            primary_url=m.primary_url,
            references=list(m.references),
            status=m.status.value if m.status is not None else "",
            layer=to_rpc_layer(m.layer),
        )
        for m in misconfs
    ]


def from_rpc_vulnerabilities(rpc_vulns: Iterable[pb.Vulnerability]) -> list[DetectedVulnerability]:
    """Return detected vulnerabilities from their message form."""
    vulns = []
    for v in rpc_vulns:
        cvss = {
            vendor: CVSS(
                v2_vector=c.v2_vector,
                v3_vector=c.v3_vector,
                v2_score=c.v2_score,
                v3_score=c.v3_score,
            )
            for vendor, c in v.cvss.items()
        }
        vulns.append(
            DetectedVulnerability(
                vulnerability_id=v.vulnerability_id,
                pkg_name=v.pkg_name,
                installed_version=v.installed_version,
                fixed_version=v.fixed_version,
                layer=from_rpc_layer(v.layer),
                severity_source=v.severity_source,
                primary_url=v.primary_url,
                custom=v.custom_advisory_data,
                title=v.title,
                description=v.description,
                severity=Severity(int(v.severity)).name,
                cvss=cvss,
                references=list(v.references),
                cwe_ids=list(v.cwe_ids),
                last_modified_date=_from_timestamp(v.last_modified_date),
                published_date=_from_timestamp(v.published_date),
                vuln_custom=v.custom_vuln_data,
            )
        )
    return vulns


def from_rpc_misconfigurations(
    rpc_misconfs: Iterable[pb.DetectedMisconfiguration],
) -> list[DetectedMisconfiguration]:
    """Return detected misconfigurations from their message form."""
    return [
        DetectedMisconfiguration(
            type=m.type,
            id=m.id,
            title=m.title,
            description=m.description,
            message=m.message,
            namespace=m.namespace,
            resolution=m.resolution,
            severity=Severity(int(m.severity)).name,
            primary_url=m.primary_url,
            references=list(m.references),
            status=_misconf_status(m.status),
            layer=from_rpc_layer(m.layer),
        )
        for m in rpc_misconfs
    ]


def from_rpc_results(rpc_results: Iterable[pb.Result]) -> list[Result]:
    """Return scan results from their message form."""
    return [
        Result(
            target=r.target,
            vulnerabilities=from_rpc_vulnerabilities(r.vulnerabilities),
            misconfigurations=from_rpc_misconfigurations(r.misconfigurations),
            result_class=_result_class(r.result_class),
            type=r.type,
            packages=from_rpc_packages(r.packages),
        )
        for r in rpc_results
    ]


def from_rpc_os(rpc_os: pb.OS | None) -> OS | None:
    """Return the OS of a message, or None when absent."""
    if rpc_os is None:
        return None
    return OS(family=rpc_os.family, name=rpc_os.name, eosl=rpc_os.eosl)


def to_rpc_os(os_info: OS | None) -> pb.OS | None:
    """Return the message form of an OS, or None when absent."""
    if os_info is None:
        return None
    return pb.OS(family=os_info.family, name=os_info.name, eosl=os_info.eosl)


def from_rpc_package_infos(rpc_pkg_infos: Iterable[pb.PackageInfo]) -> list[PackageInfo]:
    """Return package infos from their message form."""
    return [
        PackageInfo(file_path=info.file_path, packages=from_rpc_packages(info.packages))
        for info in rpc_pkg_infos
    ]


def from_rpc_applications(rpc_apps: Iterable[pb.Application]) -> list[Application]:
    """Return applications from their message form."""
    return [
        Application(
            type=app.type,
            file_path=app.file_path,
            libraries=from_rpc_libraries(app.libraries),
        )
        for app in rpc_apps
    ]


def from_rpc_misconf_results(rpc_results: Iterable[pb.MisconfResult]) -> list[MisconfResult]:
    """Return policy check results from their message form."""
    return [
        MisconfResult(
            namespace=r.namespace,
            message=r.message,
            policy_metadata=PolicyMetadata(
                id=r.id, type=r.type, title=r.title, severity=r.severity
            ),
        )
        for r in rpc_results
    ]


def from_rpc_config_misconfigurations(
    rpc_misconfs: Iterable[pb.Misconfiguration],
) -> list[Misconfiguration]:
    """Return per-file misconfigurations from their message form."""
    return [
        Misconfiguration(
            file_type=m.file_type,
            file_path=m.file_path,
            successes=from_rpc_misconf_results(m.successes),
            warnings=from_rpc_misconf_results(m.warnings),
            failures=from_rpc_misconf_results(m.failures),
            exceptions=from_rpc_misconf_results(m.exceptions),
            layer=Layer(),
        )
        for m in rpc_misconfs
    ]


def from_rpc_put_artifact_request(req: pb.PutArtifactRequest) -> ArtifactInfo:
    """Return the artifact info carried by a request."""
    info = req.artifact_info
    if info is None:
        raise ValueError("empty artifact info")
    return ArtifactInfo(
        schema_version=info.schema_version,
        architecture=info.architecture,
        created=_from_timestamp(info.created),
        docker_version=info.docker_version,
        os=info.os,
        history_packages=from_rpc_packages(info.history_packages),
    )


def from_rpc_put_blob_request(req: pb.PutBlobRequest) -> BlobInfo:
    """Return the blob info carried by a request."""
    info = req.blob_info
    if info is None:
        raise ValueError("empty blob info")
    return BlobInfo(
        schema_version=info.schema_version,
        digest=info.digest,
        diff_id=info.diff_id,
        os=from_rpc_os(info.os),
        package_infos=from_rpc_package_infos(info.package_infos),
        applications=from_rpc_applications(info.applications),
        misconfigurations=from_rpc_config_misconfigurations(info.misconfigurations),
        opaque_dirs=list(info.opaque_dirs),
        whiteout_files=list(info.whiteout_files),
    )


def to_rpc_artifact_info(artifact_id: str, info: ArtifactInfo) -> pb.PutArtifactRequest:
    """Return a request storing ``info`` under ``artifact_id``."""
    created = None
    if info.created is not None:
        try:
            created = pb.Timestamp.from_datetime(info.created)
        except (ValueError, OverflowError) as err:
            logger.warning("invalid timestamp: %s", err)
    return pb.PutArtifactRequest(
        artifact_id=artifact_id,
        artifact_info=pb.ArtifactInfo(
            schema_version=info.schema_version,
            architecture=info.architecture,
            created=created,
            docker_version=info.docker_version,
            os=info.os,
            history_packages=to_rpc_packages(info.history_packages),
        ),
    )


def to_rpc_misconf_results(results: Iterable[MisconfResult]) -> list[pb.MisconfResult]:
    """Return the message form of policy check results."""
    return [
        pb.MisconfResult(
            namespace=r.namespace,
            message=r.message,
            id=r.policy_metadata.id,
            type=r.policy_metadata.type,
            title=r.policy_metadata.title,
            severity=r.policy_metadata.severity,
        )
        for r in results
    ]


def to_rpc_blob_info(diff_id: str, blob_info: BlobInfo) -> pb.PutBlobRequest:
    """Return a request storing ``blob_info`` under ``diff_id``."""
    package_infos = [
        pb.PackageInfo(file_path=info.file_path, packages=to_rpc_packages(info.packages))
        for info in blob_info.package_infos
    ]
    applications = [
        pb.Application(
            type=app.type,
            file_path=app.file_path,
            libraries=[
                pb.Library(name=lib.name, version=lib.version, license=lib.license)
                for lib in app.libraries
            ],
        )
        for app in blob_info.applications
    ]
    misconfigurations = [
        pb.Misconfiguration(
            file_type=m.file_type,
            file_path=m.file_path,
            successes=to_rpc_misconf_results(m.successes),
            warnings=to_rpc_misconf_results(m.warnings),
            failures=to_rpc_misconf_results(m.failures),
            exceptions=to_rpc_misconf_results(m.exceptions),
        )
        for m in blob_info.misconfigurations
    ]
    return pb.PutBlobRequest(
        diff_id=diff_id,
        blob_info=pb.BlobInfo(
            schema_version=BLOB_JSON_SCHEMA_VERSION,
            digest=blob_info.digest,
            diff_id=blob_info.diff_id,
            os=to_rpc_os(blob_info.os),
            package_infos=package_infos,
            applications=applications,
            misconfigurations=misconfigurations,
            opaque_dirs=list(blob_info.opaque_dirs),
            whiteout_files=list(blob_info.whiteout_files),
        ),
    )


def to_missing_blobs_request(artifact_id: str, blob_ids: Iterable[str]) -> pb.MissingBlobsRequest:
    """Return a request asking which blobs are missing from the cache."""
    return pb.MissingBlobsRequest(artifact_id=artifact_id, blob_ids=list(blob_ids))


def to_rpc_scan_response(results: Iterable[Result], os_info: OS | None) -> pb.ScanResponse:
    """Return the message form of scan results and the detected OS."""
    rpc_results = [
        pb.Result(
            target=r.target,
            result_class=r.result_class.value if r.result_class is not None else "",
            type=r.type,
            vulnerabilities=to_rpc_vulnerabilities(r.vulnerabilities),
            misconfigurations=to_rpc_misconfigurations(r.misconfigurations),
            packages=to_rpc_packages(r.packages),
        )
        for r in results
    ]
    return pb.ScanResponse(os=to_rpc_os(os_info), results=rpc_results)