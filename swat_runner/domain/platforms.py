"""平台命名规则：操作系统族识别与可执行文件后缀映射。"""

from __future__ import annotations

import logging
import platform

from swat_runner.domain.enums import PlatformFamily

logger = logging.getLogger(__name__)

_SUFFIXES: dict[PlatformFamily, str] = {
    PlatformFamily.windows: "_win.exe",
    PlatformFamily.macos: "_osx",
    PlatformFamily.linux: "_linux",
    PlatformFamily.unknown: "",
}


def detect_platform_family(system_name: str | None = None) -> PlatformFamily:
    """将 platform.system() 风格的名称映射为平台族，无法识别时返回 unknown。"""
    name = (platform.system() if system_name is None else system_name).strip().lower()
    if name.startswith("windows"):
        return PlatformFamily.windows
    if name.startswith("darwin") or name.startswith("mac"):
        return PlatformFamily.macos
    if name.startswith("linux"):
        return PlatformFamily.linux
    return PlatformFamily.unknown


def executable_suffix(family: PlatformFamily) -> str:
    return _SUFFIXES[family]


def platform_executable_name(logical_name: str, family: PlatformFamily) -> str:
    """拼接逻辑名与平台后缀；未知平台退回无后缀的通用名称。"""
    if family is PlatformFamily.unknown:
        logger.warning(
            "could not determine OS, trying generic executable name",
            extra={"event": "platform.unknown", "payload_preview": {"logical_name": logical_name}},
        )
    return f"{logical_name}{executable_suffix(family)}"
