"""领域枚举定义：统一模型执行状态与平台族取值。"""

from __future__ import annotations

from enum import Enum


class PipelineState(str, Enum):
    """模型执行链路状态枚举。"""
    init = "init"
    directories_ready = "directories_ready"
    input_unpacked = "input_unpacked"
    executable_resolved = "executable_resolved"
    model_running = "model_running"
    outputs_collected = "outputs_collected"
    packaged = "packaged"
    done = "done"
    failed = "failed"


TERMINAL_STATES = frozenset({PipelineState.done, PipelineState.failed})


class PlatformFamily(str, Enum):
    """操作系统族枚举。"""
    windows = "windows"
    macos = "macos"
    linux = "linux"
    unknown = "unknown"
