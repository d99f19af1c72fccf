import pytest

from vulnscan.types import Package
from vulnscan.versions import format_src_version, format_version


@pytest.mark.parametrize(
    "pkg, want",
    [
        (Package(src_version="1.2.3", src_release="1"), "1.2.3-1"),
        (Package(src_epoch=2, src_version="1.2.3", src_release="alpha"), "2:1.2.3-alpha"),
    ],
    ids=["happy path", "with epoch"],
)
def test_format_src_version(pkg, want):
    assert format_src_version(pkg) == want


@pytest.mark.parametrize(
    "pkg, want",
    [
        (Package(version="1.2.3", release="1"), "1.2.3-1"),
        (Package(epoch=2, version="1.2.3", release="alpha"), "2:1.2.3-alpha"),
    ],
    ids=["happy path", "with epoch"],
)
def test_format_version(pkg, want):
    assert format_version(pkg) == want


def test_format_version_without_release():
    assert format_version(Package(version="1.2.3")) == "1.2.3"