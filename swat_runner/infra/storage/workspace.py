"""工作区管理器：创建单次运行独占的根目录与模型执行目录。"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path

from swat_runner.domain.models import WorkingDirectorySet
from swat_runner.errors import DirectoryCreationFailure

logger = logging.getLogger(__name__)


def sha256_file(path: Path) -> str:
    """流式计算文件 SHA-256 摘要。"""
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        # 分块读取大文件，避免一次性加载导致内存峰值过高。
        for chunk in iter(lambda: handle.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


class WorkspaceManager:
    """工作区目录管理器。目录的清理由调用方负责。"""
    def __init__(self, data_root: Path, model_dir_name: str = "swatmodel") -> None:
        self._data_root = data_root
        self._model_dir_name = model_dir_name

    def workspace_dir(self, run_id: str) -> Path:
        return self._data_root / run_id

    def prepare(self, root: Path) -> WorkingDirectorySet:
        """确保根目录与模型子目录存在，任一创建失败即终止本次运行。"""
        model_dir = root / self._model_dir_name
        for directory in (root, model_dir):
            if directory.is_dir():
                continue
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise DirectoryCreationFailure(f"could not create directory {directory}: {exc}") from exc
        logger.info(
            "working directories ready",
            extra={
                "event": "workspace.prepared",
                "payload_preview": {"root": str(root), "model_dir": str(model_dir)},
            },
        )
        return WorkingDirectorySet(root=root, model_dir=model_dir)
