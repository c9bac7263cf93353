"""测试公共夹具：生成可执行的 shell 脚本与压缩包。"""

from __future__ import annotations

import logging
import os
import stat
import subprocess
from pathlib import Path
from typing import Callable, Iterator
from zipfile import ZipFile

import pytest

posix_only = pytest.mark.skipif(os.name == "nt", reason="shell script executables require a POSIX platform")


def write_script(path: Path, body: str) -> Path:
    """写入 /bin/sh 脚本并设置可执行位。"""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("#!/bin/sh\n" + body.strip() + "\n", encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


def write_zip(path: Path, entries: dict[str, str | bytes]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with ZipFile(path, "w") as zipf:
        for name, content in entries.items():
            zipf.writestr(name, content)
    return path


@pytest.fixture
def script_factory(tmp_path: Path) -> Callable[[str, str], Path]:
    def _make(name: str, body: str) -> Path:
        return write_script(tmp_path / "bin" / name, body)

    return _make


class InterruptOnOutput(logging.Handler):
    """第一条模型输出落日志时抛出 KeyboardInterrupt，并记录此刻子进程是否仍在运行。"""

    def __init__(self) -> None:
        super().__init__()
        self.process: subprocess.Popen | None = None
        self.alive_when_logged: list[bool] = []

    def attach(self, process: subprocess.Popen) -> None:
        self.process = process

    def emit(self, record: logging.LogRecord) -> None:
        if getattr(record, "event", None) != "model.process.output":
            return
        assert self.process is not None
        self.alive_when_logged.append(self.process.poll() is None)
        raise KeyboardInterrupt


@pytest.fixture
def interrupt_on_output(caplog: pytest.LogCaptureFixture) -> Iterator[InterruptOnOutput]:
    runner_logger = logging.getLogger("swat_runner.infra.process.runner")
    caplog.set_level(logging.INFO, logger=runner_logger.name)
    handler = InterruptOnOutput()
    runner_logger.addHandler(handler)
    yield handler
    runner_logger.removeHandler(handler)
