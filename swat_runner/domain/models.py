"""领域数据结构定义：部署位置、进程结果、执行记录与观测值对象。"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Union

from swat_runner.domain.enums import PipelineState


@dataclass(frozen=True, slots=True)
class DirectoryDeployment:
    """以解压目录形式存在的部署包。"""
    path: Path


@dataclass(frozen=True, slots=True)
class BundleDeployment:
    """以压缩包形式存在的部署包；prefix 为包内资源根目录。"""
    path: Path
    prefix: str = ""

    def entry_name(self, relative_name: str) -> str:
        if not self.prefix:
            return relative_name
        return f"{self.prefix.rstrip('/')}/{relative_name}"


DeploymentLocation = Union[DirectoryDeployment, BundleDeployment]


@dataclass(frozen=True, slots=True)
class WorkingDirectorySet:
    """单次调用独占的工作目录：根目录与模型执行子目录。"""
    root: Path
    model_dir: Path


@dataclass(frozen=True, slots=True)
class ProcessResult:
    """子进程运行结果，输出流读尽且进程退出后不再变化。"""
    exit_code: int
    lines: tuple[str, ...]
    completed_normally: bool

    @property
    def transcript(self) -> str:
        return "".join(f"{line}\n" for line in self.lines)


@dataclass(frozen=True, slots=True)
class ArchiveEntry:
    """结果压缩包条目元数据，描述包内名称、来源文件、大小与哈希。"""
    name: str
    source_path: Path
    size_bytes: int
    sha256: str


@dataclass(slots=True)
class PipelineRun:
    """一次模型执行的过程记录，由 pipeline 在各状态迁移时更新。"""
    working_dirs: WorkingDirectorySet | None = None
    state: PipelineState = PipelineState.init
    history: list[PipelineState] = field(default_factory=lambda: [PipelineState.init])
    executable_path: Path | None = None
    process_result: ProcessResult | None = None
    output_files: list[Path] = field(default_factory=list)
    outputs: list[ArchiveEntry] = field(default_factory=list)
    result_archive: Path | None = None

    @property
    def transcript(self) -> str:
        if self.process_result is None:
            return ""
        return self.process_result.transcript


@dataclass(frozen=True, slots=True)
class ObservationRecord:
    """单条传感器观测值。"""
    timestamp: datetime
    value: float
    sensor_id: str
    unit: str | None = None
    observed_property: str | None = None


@dataclass(frozen=True, slots=True)
class ObservationReport:
    """观测序列（按时间升序）与最新观测摘要。"""
    sensor_id: str
    series: tuple[ObservationRecord, ...]

    @property
    def latest(self) -> ObservationRecord | None:
        if not self.series:
            return None
        return max(self.series, key=lambda item: item.timestamp)

    @property
    def status(self) -> str:
        latest = self.latest
        if latest is None:
            return "MISSING"
        return f"OK - [{self.sensor_id}] last: {latest.timestamp.isoformat()}"
