"""平台命名测试：验证平台族识别与可执行文件后缀映射。"""

from __future__ import annotations

import logging

import pytest

from swat_runner.domain.enums import PlatformFamily
from swat_runner.domain.platforms import detect_platform_family, executable_suffix, platform_executable_name


@pytest.mark.parametrize(
    ("system_name", "expected"),
    [
        ("Windows", PlatformFamily.windows),
        ("Darwin", PlatformFamily.macos),
        ("Mac OS X", PlatformFamily.macos),
        ("Linux", PlatformFamily.linux),
        ("SunOS", PlatformFamily.unknown),
        ("", PlatformFamily.unknown),
    ],
)
def test_detect_platform_family(system_name: str, expected: PlatformFamily) -> None:
    assert detect_platform_family(system_name) is expected


@pytest.mark.parametrize(
    ("family", "expected"),
    [
        (PlatformFamily.windows, "swat/swat_rel64_win.exe"),
        (PlatformFamily.macos, "swat/swat_rel64_osx"),
        (PlatformFamily.linux, "swat/swat_rel64_linux"),
        (PlatformFamily.unknown, "swat/swat_rel64"),
    ],
)
def test_platform_executable_name_per_family(family: PlatformFamily, expected: str) -> None:
    """每个平台族得到确定的带后缀文件名，未知平台退回通用名。"""
    assert platform_executable_name("swat/swat_rel64", family) == expected


def test_suffix_mapping_is_total() -> None:
    for family in PlatformFamily:
        assert isinstance(executable_suffix(family), str)


def test_unknown_platform_logs_warning(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="swat_runner.domain.platforms"):
        platform_executable_name("model", PlatformFamily.unknown)
    assert any(record.levelno == logging.WARNING for record in caplog.records)
