"""可执行文件定位：从部署目录或部署压缩包中解析平台对应的模型程序。"""

from __future__ import annotations

import logging
import os
import stat
from pathlib import Path

from swat_runner.domain.models import BundleDeployment, DeploymentLocation, DirectoryDeployment
from swat_runner.errors import ExecutableNotFound
from swat_runner.infra.storage.archive import ArchiveAccessor

logger = logging.getLogger(__name__)

_EXEC_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH


def locate_deployment(path: Path | None = None) -> DeploymentLocation:
    """判定部署形态，只在此处做一次目录/压缩包检测。

    未显式指定路径时以 swat_runner 包自身位置为准：普通安装是目录，
    zipapp 或 zip 导入时向上找到实际存在的压缩文件。
    """
    if path is not None:
        if path.is_dir():
            return DirectoryDeployment(path)
        return BundleDeployment(path)

    package_dir = Path(__file__).resolve().parents[2]
    if package_dir.is_dir():
        return DirectoryDeployment(package_dir)
    for ancestor in package_dir.parents:
        if ancestor.is_file():
            return BundleDeployment(ancestor, prefix=package_dir.relative_to(ancestor).as_posix())
    raise ExecutableNotFound(f"could not determine deployment location of {package_dir}")


class ExecutableLocator:
    """可执行文件定位器；压缩包部署时提取到 scratch_root 下的固定位置。"""
    def __init__(self, archive_accessor: ArchiveAccessor, scratch_root: Path) -> None:
        self._archive_accessor = archive_accessor
        self._scratch_root = scratch_root

    def scratch_path(self, relative_name: str) -> Path:
        return self._scratch_root / relative_name

    def resolve(self, location: DeploymentLocation, relative_name: str) -> Path:
        if isinstance(location, DirectoryDeployment):
            path = location.path / relative_name
            if not path.is_file():
                raise ExecutableNotFound(f"executable not found: {path}")
        else:
            path = self.scratch_path(relative_name)
            # 内容未变时复用已提取文件；其他运行可能正在执行它。
            self._archive_accessor.extract_entry(
                location.path, location.entry_name(relative_name), path, reuse_existing=True
            )

        self._mark_executable(path)
        logger.info(
            "model executable resolved",
            extra={
                "event": "executable.resolved",
                "payload_preview": {
                    "deployment": str(location.path),
                    "kind": "directory" if isinstance(location, DirectoryDeployment) else "bundle",
                    "executable": str(path),
                },
            },
        )
        return path

    @staticmethod
    def _mark_executable(path: Path) -> None:
        if os.name == "nt":
            return
        mode = path.stat().st_mode
        if mode & _EXEC_BITS == _EXEC_BITS:
            return
        try:
            path.chmod(mode | _EXEC_BITS)
        except OSError as exc:
            # 只读安装目录下无法改权限；真正无法执行时由启动阶段报 LaunchFailure。
            logger.warning(
                "could not mark executable",
                extra={"event": "executable.chmod.failed", "error_type": type(exc).__name__, "error": str(exc)},
            )
