import pytest

from vulnscan.scanner.scan import Scanner
from vulnscan.types import (
    OS,
    ArtifactReference,
    DetectedVulnerability,
    ImageMetadata,
    Layer,
    Metadata,
    Package,
    Report,
    Result,
    ScanError,
    ScanOptions,
)

ARTIFACT_ID = "sha256:e7d92cdc71feacf90708cb59182d0df1b911f8ae022d29e8e95d75ca6a99776a"
BLOB_ID = "sha256:5216338b40a7b96416b8b9858974bbe4acc3096ee60acbc4dfb1ee02aecceb10"
DIFF_ID = "sha256:b2a1a2d80bf0c747a4f6b0ca6af5eef23f043fcdb1ed4f3a3e750aef2dc68079"
IMAGE_ID = "sha256:e389ae58922402a7ded319e79f06ac428d05698d8e61ecbe88d2cf850e42651d"
IMAGE_DIFF = "sha256:9a5d14f9f5503e55088666beef7e85a8d9625d4fa7418e2fe269e9c54bcb853c"
REPO_DIGEST = "alpine@sha256:0bd0e9e03a022c3b0226667621da84fc9bf562a9056130424b5bfbd8bcb0397f"


class FakeArtifact:
    def __init__(self, ref=None, error=None):
        self.ref = ref
        self.error = error

    def inspect(self):
        if self.error is not None:
            raise self.error
        return self.ref


class FakeDriver:
    def __init__(self, results=None, os_found=None, error=None):
        self.results = results or []
        self.os_found = os_found
        self.error = error
        self.calls = []

    def scan(self, target, artifact_key, blob_keys, options):
        self.calls.append((target, artifact_key, list(blob_keys), options))
        if self.error is not None:
            raise self.error
        return self.results, self.os_found


def make_results():
    return [
        Result(
            target="alpine:3.11",
            vulnerabilities=[
                DetectedVulnerability(
                    vulnerability_id="CVE-2019-9999",
                    pkg_name="vim",
                    installed_version="1.2.3",
                    fixed_version="1.2.4",
                    layer=Layer(digest=BLOB_ID, diff_id=DIFF_ID),
                )
            ],
        ),
        Result(
            target="node-app/package-lock.json",
            vulnerabilities=[
                DetectedVulnerability(
                    vulnerability_id="CVE-2019-11358",
                    pkg_name="jquery",
                    installed_version="3.3.9",
                    fixed_version=">=3.4.0",
                )
            ],
            type="npm",
        ),
    ]


def image_ref(artifact_type="container_image"):
    return ArtifactReference(
        name="alpine:3.11",
        type=artifact_type,
        id=ARTIFACT_ID,
        blob_ids=[BLOB_ID],
        image_metadata=ImageMetadata(
            id=IMAGE_ID,
            diff_ids=[IMAGE_DIFF],
            repo_tags=["alpine:3.11"],
            repo_digests=[REPO_DIGEST],
        ),
    )


def test_scan_artifact_happy_path():
    options = ScanOptions(vuln_type=["os"])
    driver = FakeDriver(make_results(), OS(family="alpine", name="3.10", eosl=True))
    report = Scanner(driver, FakeArtifact(image_ref())).scan_artifact(options)

    assert report == Report(
        schema_version=2,
        artifact_name="alpine:3.11",
        artifact_type="container_image",
        metadata=Metadata(
            os=OS(family="alpine", name="3.10", eosl=True),
            image_id=IMAGE_ID,
            diff_ids=[IMAGE_DIFF],
            repo_tags=["alpine:3.11"],
            repo_digests=[REPO_DIGEST],
        ),
        results=make_results(),
    )
    assert driver.calls == [("alpine:3.11", ARTIFACT_ID, [BLOB_ID], options)]


def test_inspect_error():
    artifact = FakeArtifact(error=RuntimeError("error"))
    with pytest.raises(ScanError, match="failed analysis"):
        Scanner(FakeDriver(), artifact).scan_artifact(ScanOptions(vuln_type=["os"]))


def test_driver_error():
    ref = ArtifactReference(name="alpine:3.11", id=ARTIFACT_ID, blob_ids=[BLOB_ID])
    driver = FakeDriver(error=RuntimeError("error"))
    with pytest.raises(ScanError, match="scan failed"):
        Scanner(driver, FakeArtifact(ref)).scan_artifact(ScanOptions(vuln_type=["os"]))
    assert driver.calls[0][:3] == ("alpine:3.11", ARTIFACT_ID, [BLOB_ID])


def test_layers_removed_for_non_image_artifacts():
    results = make_results()
    results[0].packages = [Package(name="vim", layer=Layer(digest=BLOB_ID, diff_id=DIFF_ID))]
    driver = FakeDriver(results, None)
    report = Scanner(driver, FakeArtifact(image_ref("filesystem"))).scan_artifact(ScanOptions())

    layers = [
        item.layer
        for result in report.results
        for item in (*result.packages, *result.vulnerabilities, *result.misconfigurations)
    ]
    assert layers == [Layer(), Layer(), Layer()]
    assert report.metadata.os is None
    assert report.artifact_type == "filesystem"