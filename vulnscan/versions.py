"""Formatting of package versions with epoch and release."""

from __future__ import annotations

from vulnscan.types import Package


def _format(epoch: int, version: str, release: str) -> str:
    v = f"{version}-{release}" if release else version
    return f"{epoch}:{v}" if epoch else v


def format_version(pkg: Package) -> str:
    """Return "epoch:version-release" for the binary package."""
    return _format(pkg.epoch, pkg.version, pkg.release)


def format_src_version(pkg: Package) -> str:
    """Return "epoch:version-release" for the source package."""
    return _format(pkg.src_epoch, pkg.src_version, pkg.src_release)