from datetime import datetime, timezone

import pytest

from vulnscan.rpc import messages as pb
from vulnscan.rpc.server import CacheServer, ScanServer
from vulnscan.types import (
    OS,
    Application,
    ArtifactInfo,
    BlobInfo,
    DetectedVulnerability,
    Layer,
    Package,
    PackageInfo,
    Result,
    ScanError,
    ScanOptions,
)

IMAGE_ID = "sha256:e7d92cdc71feacf90708cb59182d0df1b911f8ae022d29e8e95d75ca6a99776a"
LAYER_ID = "sha256:5216338b40a7b96416b8b9858974bbe4acc3096ee60acbc4dfb1ee02aecceb10"
DIGEST = "sha256:154ad0735c360b212b167f424d33a62305770a1fcfb6363882f5c436cfbd9812"
DIFF_ID = "sha256:b2a1a2d80bf0c747a4f6b0ca6af5eef23f043fcdb1ed4f3a3e750aef2dc68079"
PRIMARY_URL = "https://avd.example.com/nvd/cve-2019-0001"


class FakeDriver:
    def __init__(self, outcome):
        self.outcome = outcome
        self.calls = []

    def scan(self, target, artifact_key, blob_keys, options):
        self.calls.append((target, artifact_key, list(blob_keys), options))
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


class FakeFiller:
    def __init__(self):
        self.types = []

    def fill_vulnerability_info(self, vulns, result_type):
        self.types.append(result_type)
        for v in vulns:
            v.severity = "MEDIUM"
            v.severity_source = "nvd"
            v.primary_url = PRIMARY_URL
            v.title = "dos"
            v.description = "dos vulnerability"
            v.references = ["http://example.com"]


class FakeCache:
    def __init__(self, error=None, missing=(False, [])):
        self.error = error
        self.missing = missing
        self.artifacts = []
        self.blobs = []
        self.missing_calls = []

    def put_artifact(self, artifact_id, info):
        self.artifacts.append((artifact_id, info))
        if self.error:
            raise self.error

    def put_blob(self, blob_id, info):
        self.blobs.append((blob_id, info))
        if self.error:
            raise self.error

    def missing_blobs(self, artifact_id, blob_ids):
        self.missing_calls.append((artifact_id, list(blob_ids)))
        return self.missing


def _scan_request():
    return pb.ScanRequest(
        target="alpine:3.11",
        artifact_id=IMAGE_ID,
        blob_ids=[LAYER_ID],
        options=pb.ScanOptions(),
    )


def test_scan_server_happy_path():
    results = [
        Result(
            target="alpine:3.11 (alpine 3.11)",
            vulnerabilities=[
                DetectedVulnerability(
                    vulnerability_id="CVE-2019-0001",
                    pkg_name="musl",
                    installed_version="1.2.3",
                    fixed_version="1.2.4",
                    last_modified_date=datetime(2020, 1, 1, 1, 1, tzinfo=timezone.utc),
                    published_date=datetime(2001, 1, 1, 1, 1, tzinfo=timezone.utc),
                )
            ],
            type="alpine",
        )
    ]
    driver = FakeDriver((results, OS(family="alpine", name="3.11", eosl=True)))
    filler = FakeFiller()
    got = ScanServer(driver, filler).scan(_scan_request())

    assert got == pb.ScanResponse(
        os=pb.OS(family="alpine", name="3.11", eosl=True),
        results=[
            pb.Result(
                target="alpine:3.11 (alpine 3.11)",
                vulnerabilities=[
                    pb.Vulnerability(
                        vulnerability_id="CVE-2019-0001",
                        pkg_name="musl",
                        installed_version="1.2.3",
                        fixed_version="1.2.4",
                        severity=pb.Severity.MEDIUM,
                        severity_source="nvd",
                        layer=pb.Layer(),
                        cvss={},
                        primary_url=PRIMARY_URL,
                        title="dos",
                        description="dos vulnerability",
                        references=["http://example.com"],
                        last_modified_date=pb.Timestamp(seconds=1577840460),
                        published_date=pb.Timestamp(seconds=978310860),
                    )
                ],
                type="alpine",
            )
        ],
    )
    assert filler.types == ["alpine"]
    assert driver.calls == [("alpine:3.11", IMAGE_ID, [LAYER_ID], ScanOptions())]


def test_scan_server_error():
    driver = FakeDriver(RuntimeError("error"))
    with pytest.raises(ScanError, match="failed scan, alpine:3.11"):
        ScanServer(driver, FakeFiller()).scan(_scan_request())


def _created():
    return pb.Timestamp.from_datetime(datetime(2020, 1, 2, 3, 4, 5, tzinfo=timezone.utc))


def test_put_artifact_happy_path():
    cache = FakeCache()
    request = pb.PutArtifactRequest(
        artifact_id=IMAGE_ID,
        artifact_info=pb.ArtifactInfo(
            schema_version=1,
            architecture="amd64",
            created=_created(),
            docker_version="18.09",
            os="linux",
        ),
    )
    CacheServer(cache).put_artifact(request)
    assert cache.artifacts == [
        (
            IMAGE_ID,
            ArtifactInfo(
                schema_version=1,
                architecture="amd64",
                created=datetime(2020, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
                docker_version="18.09",
                os="linux",
            ),
        )
    ]


def test_put_artifact_cache_error():
    cache = FakeCache(error=RuntimeError("error"))
    request = pb.PutArtifactRequest(
        artifact_id=IMAGE_ID,
        artifact_info=pb.ArtifactInfo(schema_version=1, created=_created()),
    )
    with pytest.raises(ScanError, match="unable to store image info in cache"):
        CacheServer(cache).put_artifact(request)


def test_put_artifact_empty_info():
    cache = FakeCache()
    with pytest.raises(ScanError, match="empty image info"):
        CacheServer(cache).put_artifact(pb.PutArtifactRequest())
    assert cache.artifacts == []


def test_put_blob_happy_path():
    cache = FakeCache()
    rpc_layer = pb.Layer(digest=DIGEST, diff_id=DIFF_ID)
    request = pb.PutBlobRequest(
        diff_id=DIFF_ID,
        blob_info=pb.BlobInfo(
            schema_version=1,
            digest=DIGEST,
            diff_id=DIFF_ID,
            os=pb.OS(family="alpine", name="3.11"),
            package_infos=[
                pb.PackageInfo(
                    file_path="lib/apk/db/installed",
                    packages=[
                        pb.Package(
                            name="binary", version="1.2.3", release="1", epoch=2,
                            arch="x86_64", src_name="src", src_version="1.2.3",
                            src_release="1", src_epoch=2, layer=rpc_layer,
                        ),
                        pb.Package(
                            name="vim-minimal", version="7.4.160", release="5.el7", epoch=2,
                            arch="x86_64", src_name="vim", src_version="7.4.160",
                            src_release="5.el7", src_epoch=2, layer=rpc_layer,
                        ),
                        pb.Package(
                            name="node-minimal", version="17.1.0", release="5.el7", epoch=2,
                            arch="x86_64", src_name="node", src_version="17.1.0",
                            src_release="5.el7", src_epoch=2, layer=None,
                        ),
                    ],
                )
            ],
            applications=[
                pb.Application(
                    type="composer",
                    file_path="php-app/composer.lock",
                    libraries=[
                        pb.Library(name="guzzlehttp/guzzle", version="6.2.0"),
                        pb.Library(name="guzzlehttp/promises", version="v1.3.1"),
                    ],
                )
            ],
            opaque_dirs=["etc/"],
            whiteout_files=["etc/hostname"],
        ),
    )
    CacheServer(cache).put_blob(request)

    layer = Layer(digest=DIGEST, diff_id=DIFF_ID)
    expected = BlobInfo(
        schema_version=1,
        digest=DIGEST,
        diff_id=DIFF_ID,
        os=OS(family="alpine", name="3.11"),
        package_infos=[
            PackageInfo(
                file_path="lib/apk/db/installed",
                packages=[
                    Package(
                        name="binary", version="1.2.3", release="1", epoch=2,
                        arch="x86_64", src_name="src", src_version="1.2.3",
                        src_release="1", src_epoch=2, layer=layer,
                    ),
                    Package(
                        name="vim-minimal", version="7.4.160", release="5.el7", epoch=2,
                        arch="x86_64", src_name="vim", src_version="7.4.160",
                        src_release="5.el7", src_epoch=2, layer=layer,
                    ),
                    Package(
                        name="node-minimal", version="17.1.0", release="5.el7", epoch=2,
                        arch="x86_64", src_name="node", src_version="17.1.0",
                        src_release="5.el7", src_epoch=2, layer=Layer(),
                    ),
                ],
            )
        ],
        applications=[
            Application(
                type="composer",
                file_path="php-app/composer.lock",
                libraries=[
                    Package(name="guzzlehttp/guzzle", version="6.2.0"),
                    Package(name="guzzlehttp/promises", version="v1.3.1"),
                ],
            )
        ],
        opaque_dirs=["etc/"],
        whiteout_files=["etc/hostname"],
    )
    assert cache.blobs == [(DIFF_ID, expected)]


def test_put_blob_cache_error():
    cache = FakeCache(error=RuntimeError("error"))
    request = pb.PutBlobRequest(blob_info=pb.BlobInfo(schema_version=1))
    with pytest.raises(ScanError, match="unable to store layer info in cache"):
        CacheServer(cache).put_blob(request)


def test_put_blob_empty_info():
    cache = FakeCache(error=RuntimeError("error"))
    with pytest.raises(ScanError, match="empty layer info"):
        CacheServer(cache).put_blob(pb.PutBlobRequest())
    assert cache.blobs == []


def test_missing_blobs():
    blob_a = "sha256:932da51564135c98a49a34a193d6cd363d8fa4184d957fde16c9d8527b3f3b02"
    blob_b = "sha256:dffd9992ca398466a663c87c92cfea2a2db0ae0cf33fcb99da60eec52addbfc5"
    cache = FakeCache(missing=(False, [blob_b]))
    got = CacheServer(cache).missing_blobs(
        pb.MissingBlobsRequest(artifact_id=IMAGE_ID, blob_ids=[blob_a, blob_b])
    )
    assert got == pb.MissingBlobsResponse(missing_artifact=False, missing_blob_ids=[blob_b])
    assert cache.missing_calls == [(IMAGE_ID, [blob_a, blob_b])]