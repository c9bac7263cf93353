"""可执行文件定位测试：覆盖目录部署、压缩包部署与两者等价性。"""

from __future__ import annotations

import os
import shutil
import subprocess
from pathlib import Path

import pytest

from conftest import posix_only, write_zip
from swat_runner.domain.models import BundleDeployment, DirectoryDeployment
from swat_runner.errors import EntryNotFound, ExecutableNotFound
from swat_runner.infra.process.locator import ExecutableLocator, locate_deployment
from swat_runner.infra.storage.archive import ArchiveAccessor

EXE = "swat/swat_rel64_linux"
PAYLOAD = b"#!/bin/sh\necho swat\n"


def _locator(tmp_path: Path) -> ExecutableLocator:
    return ExecutableLocator(ArchiveAccessor(), tmp_path / "scratch")


def test_locate_deployment_detects_directory_and_bundle(tmp_path: Path) -> None:
    bundle = write_zip(tmp_path / "deploy.zip", {EXE: PAYLOAD})

    assert locate_deployment(tmp_path) == DirectoryDeployment(tmp_path)
    assert locate_deployment(bundle) == BundleDeployment(bundle)


def test_locate_deployment_defaults_to_package_directory() -> None:
    location = locate_deployment()

    assert isinstance(location, DirectoryDeployment)
    assert location.path.name == "swat_runner"


def test_directory_deployment_resolves_in_place(tmp_path: Path) -> None:
    deploy = tmp_path / "deploy"
    (deploy / "swat").mkdir(parents=True)
    (deploy / EXE).write_bytes(PAYLOAD)

    path = _locator(tmp_path).resolve(DirectoryDeployment(deploy), EXE)

    assert path == deploy / EXE
    assert not (tmp_path / "scratch").exists()


def test_directory_deployment_missing_executable(tmp_path: Path) -> None:
    with pytest.raises(ExecutableNotFound):
        _locator(tmp_path).resolve(DirectoryDeployment(tmp_path), EXE)


def test_bundle_deployment_extracts_to_deterministic_scratch_path(tmp_path: Path) -> None:
    bundle = write_zip(tmp_path / "deploy.zip", {EXE: PAYLOAD})
    locator = _locator(tmp_path)

    first = locator.resolve(BundleDeployment(bundle), EXE)
    second = locator.resolve(BundleDeployment(bundle), EXE)

    assert first == second == tmp_path / "scratch" / EXE
    assert first.read_bytes() == PAYLOAD


def test_bundle_deployment_honours_prefix(tmp_path: Path) -> None:
    bundle = write_zip(tmp_path / "app.pyz", {f"swat_runner/{EXE}": PAYLOAD})

    path = _locator(tmp_path).resolve(BundleDeployment(bundle, prefix="swat_runner"), EXE)

    assert path.read_bytes() == PAYLOAD


def test_bundle_deployment_missing_entry(tmp_path: Path) -> None:
    bundle = write_zip(tmp_path / "deploy.zip", {"swat/other": b""})

    with pytest.raises(EntryNotFound):
        _locator(tmp_path).resolve(BundleDeployment(bundle), EXE)


def test_directory_and_bundle_resolve_identical_bytes(tmp_path: Path) -> None:
    """同一逻辑可执行文件在目录部署与压缩包部署下内容一致。"""
    deploy = tmp_path / "deploy"
    (deploy / "swat").mkdir(parents=True)
    (deploy / EXE).write_bytes(PAYLOAD)
    bundle = write_zip(tmp_path / "deploy.zip", {EXE: PAYLOAD})
    locator = _locator(tmp_path)

    from_dir = locator.resolve(DirectoryDeployment(deploy), EXE)
    from_bundle = locator.resolve(BundleDeployment(bundle), EXE)

    assert from_dir != from_bundle
    assert from_dir.read_bytes() == from_bundle.read_bytes()


@posix_only
def test_resolved_file_is_marked_executable(tmp_path: Path) -> None:
    bundle = write_zip(tmp_path / "deploy.zip", {EXE: PAYLOAD})

    path = _locator(tmp_path).resolve(BundleDeployment(bundle), EXE)

    assert os.access(path, os.X_OK)


def test_bundle_resolution_reuses_current_extraction(tmp_path: Path) -> None:
    bundle = write_zip(tmp_path / "deploy.zip", {EXE: PAYLOAD})
    locator = _locator(tmp_path)

    first = locator.resolve(BundleDeployment(bundle), EXE)
    inode = first.stat().st_ino
    second = locator.resolve(BundleDeployment(bundle), EXE)

    assert second.stat().st_ino == inode
    assert sorted(path.name for path in second.parent.iterdir()) == [second.name]


def test_bundle_resolution_replaces_stale_extraction(tmp_path: Path) -> None:
    bundle = write_zip(tmp_path / "deploy.zip", {EXE: PAYLOAD})
    locator = _locator(tmp_path)
    stale = locator.scratch_path(EXE)
    stale.parent.mkdir(parents=True)
    stale.write_bytes(b"#!/bin/sh\necho old build\n")

    path = locator.resolve(BundleDeployment(bundle), EXE)

    assert path.read_bytes() == PAYLOAD


@posix_only
def test_resolve_while_extracted_binary_is_running(tmp_path: Path) -> None:
    """另一运行正在执行已提取的程序时，再次解析（含内容更新）不会改写正在执行的文件。"""
    sleep_binary = shutil.which("sleep")
    if sleep_binary is None:
        pytest.skip("sleep binary not available")
    # 保留 sleep 文件名，多调用二进制（busybox 等）按 argv[0] 分派。
    name = "bin/sleep"
    binary = Path(sleep_binary).resolve().read_bytes()
    bundle = write_zip(tmp_path / "deploy.zip", {name: binary})
    locator = _locator(tmp_path)

    path = locator.resolve(BundleDeployment(bundle), name)
    process = subprocess.Popen([str(path), "30"])
    try:
        assert locator.resolve(BundleDeployment(bundle), name) == path

        rebuilt = write_zip(tmp_path / "deploy-v2.zip", {name: binary + b"\0"})
        assert locator.resolve(BundleDeployment(rebuilt), name) == path
        assert path.read_bytes() == binary + b"\0"
        assert process.poll() is None
    finally:
        process.kill()
        process.wait()
