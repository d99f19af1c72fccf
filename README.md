# vulnscan

The core of a vulnerability and misconfiguration scanner. It takes what an
analyzer found in an artifact (a container image, a filesystem, a
repository) and turns it into a report. It uses only the Python standard
library and needs Python 3.10 or later.

## What is in the package

- `vulnscan.types`: the data types shared by everything else (`Package`,
  `OS`, `ArtifactDetail`, `DetectedVulnerability`,
  `DetectedMisconfiguration`, `Result`, `Report`, `ScanOptions`, ...), the
  `Severity` enum with `new_severity`, `compare_severity_strings` and
  `sort_by_severity`, `new_vuln_type` and `new_security_check`, and the
  `ScanError` exception.
- `vulnscan.scanner.local.LocalScanner` finds vulnerabilities in OS packages
  and language libraries and turns configuration check results into
  misconfiguration findings.
- `vulnscan.scanner.scan.Scanner` inspects an artifact, scans it with a
  driver (for example a `LocalScanner` or a `RemoteScanner`) and builds a
  `Report`. Layer information is cleared unless the artifact is a
  container image.
- `vulnscan.rpc.messages` holds the wire messages, and `vulnscan.rpc.convert`
  converts between them and the types in `vulnscan.types`.
- `vulnscan.rpc.client.RemoteScanner` sends a scan request through a
  `ScanClient` you supply, retrying while the server answers "unavailable".
  `with_custom_headers` attaches extra request headers, refusing those the
  transport reserves (`Accept`, `Content-Type`, `Twirp-Version`).
- `vulnscan.rpc.server.ScanServer` and `vulnscan.rpc.server.CacheServer` are
  the request handlers of the server side.
- `vulnscan.retry.retry` calls a function again with exponential backoff
  when it raises an `RpcError` whose code is `ErrorCode.UNAVAILABLE`, up to
  `max_retries` times; any other exception is raised at once.
- `vulnscan.versions.format_version` and `format_src_version` give
  `epoch:version-release` strings.
- `vulnscan.utils` has `copy_file`, `default_cache_dir`, `cache_dir` and
  `set_cache_dir`.

## Installation

```
pip install .
```

## Plugging in your own components

The scanners and handlers rely on small protocols that you implement:

- an `Applier` with `apply_layers(artifact_id, blob_ids)` returning an
  `ArtifactDetail`; it may raise `UnknownOSError` or
  `NoPackagesDetectedError` (from `vulnscan.scanner.local`) carrying the
  detail, and the scan goes on with that detail;
- an `OspkgDetector` with
  `detect(image_name, os_family, os_name, created, pkgs)` returning the
  detected vulnerabilities and an end-of-life flag; raising
  `UnsupportedOSError` makes the scan skip OS packages;
- a `LibraryDetector` with `detect(lib_type, libraries)`;
- an `Artifact` with `inspect()` returning an `ArtifactReference`;
- for the server side, a `VulnerabilityFiller` with
  `fill_vulnerability_info(vulns, result_type)` and an `ArtifactCache` with
  `put_artifact`, `put_blob` and `missing_blobs`;
- for the client side, a `ScanClient` with `scan(headers, request)`.

Failures in the scanners and handlers are raised as
`vulnscan.types.ScanError`, with the cause chained and a message that keeps
its context, for example `"scan failed: ..."` or
`"failed to detect vulnerabilities via RPC: ..."`.

## Example

```python
from vulnscan.types import ScanOptions
from vulnscan.scanner.local import LocalScanner
from vulnscan.scanner.scan import Scanner

driver = LocalScanner(my_applier, my_os_detector, my_library_detector)
scanner = Scanner(driver, my_artifact)
report = scanner.scan_artifact(
    ScanOptions(vuln_type=["os", "library"], security_checks=["vuln", "config"])
)
for result in report.results:
    print(result.target, len(result.vulnerabilities))
```

## Registry options

`vulnscan.types.get_docker_option(timeout, environ)` builds a `DockerOption`
from the given timeout and these variables of `environ` (or of the process
environment when `environ` is `None`):

- `TRIVY_USERNAME`
- `TRIVY_PASSWORD`
- `TRIVY_REGISTRY_TOKEN`
- `TRIVY_INSECURE` (boolean)
- `TRIVY_NON_SSL` (boolean)

An unparsable boolean raises `ScanError`.

## What this package does not do

- It has no command-line program.
- It does not analyse images, filesystems or repositories itself, and holds
  no vulnerability database: detectors, appliers and artifacts come from you.
- It has no network transport. `ScanServer` and `CacheServer` are plain
  handlers and are not served over HTTP; `RemoteScanner` needs a
  `ScanClient` that does the sending.
- It does not store cache data; the `ArtifactCache` is yours to provide.

## Running the tests

```
pip install ".[test]"
pytest
```