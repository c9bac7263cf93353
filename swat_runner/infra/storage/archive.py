"""压缩包访问器：按条目名提取、整体解压与输出文件打包。"""

from __future__ import annotations

import logging
import os
import shutil
import zlib
from pathlib import Path
from typing import Iterable
from uuid import uuid4
from zipfile import ZIP_DEFLATED, BadZipFile, ZipFile, ZipInfo

from swat_runner.domain.models import ArchiveEntry
from swat_runner.errors import ArchiveUnreadable, EntryNotFound, IOFailure
from swat_runner.infra.storage.workspace import sha256_file

logger = logging.getLogger(__name__)


def _open_archive(archive_path: Path) -> ZipFile:
    try:
        return ZipFile(archive_path, "r")
    except (BadZipFile, OSError) as exc:
        logger.error(
            "archive could not be opened",
            extra={
                "event": "archive.open.failed",
                "error_type": type(exc).__name__,
                "error": str(exc),
                "payload_preview": {"archive": str(archive_path)},
            },
        )
        raise ArchiveUnreadable(f"cannot open archive {archive_path}: {exc}") from exc


def _is_current(info: ZipInfo, dest_path: Path) -> bool:
    if not dest_path.is_file() or dest_path.stat().st_size != info.file_size:
        return False
    crc = 0
    with dest_path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1024 * 1024), b""):
            crc = zlib.crc32(chunk, crc)
    return crc == info.CRC


def _atomic_temp_path(target_path: Path) -> Path:
    return target_path.parent / f".{target_path.name}.{uuid4().hex}.tmp"


def disambiguate_name(name: str, taken: set[str]) -> str:
    """同名条目追加序号：output.txt -> output_1.txt -> output_2.txt。"""
    if name not in taken:
        return name
    path = Path(name)
    idx = 1
    while True:
        candidate = f"{path.stem}_{idx}{path.suffix}"
        if candidate not in taken:
            return candidate
        idx += 1


class ArchiveAccessor:
    """ZIP 压缩包读写封装，所有失败均转换为带标签的错误。"""

    def extract_entry(
        self,
        archive_path: Path,
        entry_name: str,
        dest_path: Path,
        *,
        reuse_existing: bool = False,
    ) -> Path:
        """按精确名称提取单个条目到 dest_path。

        先写同目录临时文件再 os.replace 到位，正在被执行的旧文件不会被改写。
        reuse_existing 为真且目标文件大小与 CRC 均与条目一致时不再提取。
        """
        with _open_archive(archive_path) as zipf:
            try:
                info = zipf.getinfo(entry_name)
            except KeyError as exc:
                raise EntryNotFound(f"cannot find file: {entry_name} in archive: {archive_path}") from exc
            try:
                if reuse_existing and _is_current(info, dest_path):
                    logger.debug(
                        "archive entry already extracted",
                        extra={"event": "archive.entry.reused", "payload_preview": {"dest": str(dest_path)}},
                    )
                    return dest_path
                dest_path.parent.mkdir(parents=True, exist_ok=True)
                temp_path = _atomic_temp_path(dest_path)
                try:
                    with zipf.open(info) as source, temp_path.open("wb") as target:
                        shutil.copyfileobj(source, target)
                    os.replace(temp_path, dest_path)
                finally:
                    if temp_path.exists():
                        temp_path.unlink()
            except BadZipFile as exc:
                raise ArchiveUnreadable(f"corrupt entry {entry_name} in {archive_path}: {exc}") from exc
            except OSError as exc:
                raise IOFailure(f"could not write {dest_path}: {exc}") from exc
        logger.debug(
            "archive entry extracted",
            extra={
                "event": "archive.entry.extracted",
                "payload_preview": {"archive": str(archive_path), "entry": entry_name, "dest": str(dest_path)},
            },
        )
        return dest_path

    def extract_all(self, archive_path: Path, dest_dir: Path) -> list[Path]:
        """解压全部条目并保留相对路径；任一失败时整个 dest_dir 视为无效。"""
        extracted: list[Path] = []
        with _open_archive(archive_path) as zipf:
            try:
                dest_dir.mkdir(parents=True, exist_ok=True)
                for info in zipf.infolist():
                    # extract() 会清理绝对路径与 ".." 片段，条目不会写出 dest_dir。
                    target = Path(zipf.extract(info, path=dest_dir))
                    if not info.is_dir():
                        extracted.append(target)
            except BadZipFile as exc:
                raise ArchiveUnreadable(f"corrupt archive {archive_path}: {exc}") from exc
            except OSError as exc:
                raise IOFailure(f"could not extract {archive_path} to {dest_dir}: {exc}") from exc
        logger.info(
            "archive extracted",
            extra={
                "event": "archive.extracted",
                "payload_preview": {"archive": str(archive_path), "dest": str(dest_dir), "files": len(extracted)},
            },
        )
        return extracted

    def compress(self, file_paths: Iterable[Path], dest_archive_path: Path) -> list[ArchiveEntry]:
        """将文件按基本文件名平铺写入一个压缩包，重名时追加序号。"""
        entries: list[ArchiveEntry] = []
        taken: set[str] = set()
        try:
            dest_archive_path.parent.mkdir(parents=True, exist_ok=True)
            with ZipFile(dest_archive_path, "w", compression=ZIP_DEFLATED) as zipf:
                for file_path in file_paths:
                    arcname = disambiguate_name(file_path.name, taken)
                    if arcname != file_path.name:
                        logger.warning(
                            "archive entry name collision",
                            extra={
                                "event": "archive.entry.renamed",
                                "payload_preview": {"source": str(file_path), "arcname": arcname},
                            },
                        )
                    taken.add(arcname)
                    zipf.write(file_path, arcname=arcname)
                    entries.append(
                        ArchiveEntry(
                            name=arcname,
                            source_path=file_path,
                            size_bytes=file_path.stat().st_size,
                            sha256=sha256_file(file_path),
                        )
                    )
        except OSError as exc:
            # 写失败的压缩包不完整，删除后再上报，避免交付损坏的结果。
            dest_archive_path.unlink(missing_ok=True)
            raise IOFailure(f"could not write archive {dest_archive_path}: {exc}") from exc
        logger.info(
            "archive written",
            extra={
                "event": "archive.compressed",
                "payload_preview": {"archive": str(dest_archive_path), "entries": [item.name for item in entries]},
            },
        )
        return entries
