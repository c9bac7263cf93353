"""输出收集器：按文件名通配模式递归扫描目录。"""

from __future__ import annotations

import fnmatch
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class OutputCollector:
    def collect(self, root_dir: Path, name_pattern: str) -> list[Path]:
        """返回 root_dir 下文件名匹配 name_pattern 的全部普通文件（单次快照）。

        大小写规则随平台：fnmatch 会先按 os.path.normcase 归一化。
        """
        if not root_dir.is_dir():
            return []
        # 统一排序确保压缩包内容顺序稳定，便于追踪差异。
        matches = sorted(
            path for path in root_dir.rglob("*") if path.is_file() and fnmatch.fnmatch(path.name, name_pattern)
        )
        if not matches:
            logger.warning(
                "no files matched output pattern",
                extra={
                    "event": "outputs.collect.empty",
                    "payload_preview": {"root": str(root_dir), "pattern": name_pattern},
                },
            )
        else:
            logger.info(
                "output files collected",
                extra={
                    "event": "outputs.collected",
                    "payload_preview": {"root": str(root_dir), "pattern": name_pattern, "count": len(matches)},
                },
            )
        return matches
