"""依赖容器测试：验证环境变量配置驱动的端到端模型运行。"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Iterator

import pytest

from conftest import posix_only, write_zip
from swat_runner.application import container
from swat_runner.config import get_settings
from swat_runner.domain.enums import PipelineState
from swat_runner.domain.models import BundleDeployment
from swat_runner.domain.platforms import detect_platform_family, platform_executable_name


@pytest.fixture
def fresh_container(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    monkeypatch.setenv("SWAT_RUNNER_DATA_ROOT", str(tmp_path / "data"))
    monkeypatch.setenv("SWAT_RUNNER_SCRATCH_ROOT", str(tmp_path / "scratch"))
    monkeypatch.setenv("SWAT_RUNNER_LOG_DIR", str(tmp_path / "logs"))
    get_settings.cache_clear()
    container.shutdown_container_resources()
    yield tmp_path
    container.shutdown_container_resources()
    get_settings.cache_clear()


def test_settings_read_prefixed_environment(fresh_container: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SWAT_RUNNER_FAIL_ON_EMPTY_OUTPUT", "true")
    get_settings.cache_clear()

    settings = get_settings()

    assert settings.data_root == fresh_container / "data"
    assert settings.data_root.is_dir()
    assert settings.fail_on_empty_output is True


@posix_only
def test_run_model_allocates_workspace_under_data_root(
    fresh_container: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    exe_name = platform_executable_name("swat/swat_rel64", detect_platform_family())
    bundle = write_zip(
        fresh_container / "deploy.zip",
        {exe_name: "#!/bin/sh\necho simulated\necho result > output.std\n"},
    )
    monkeypatch.setenv("SWAT_RUNNER_DEPLOYMENT_PATH", str(bundle))
    get_settings.cache_clear()
    input_zip = write_zip(fresh_container / "input.zip", {"file.cio": "x"})

    run = container.run_model([input_zip])

    assert isinstance(container.get_pipeline().deployment, BundleDeployment)
    assert run.state is PipelineState.done
    assert run.working_dirs is not None
    assert run.working_dirs.root.parent == fresh_container / "data"
    assert run.transcript == "simulated\n"
    assert run.result_archive is not None and run.result_archive.is_file()


@posix_only
def test_run_model_writes_run_events_to_log_file(fresh_container: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """run_model 首次调用时初始化日志，状态迁移与模型输出按 run_id 写入 JSONL 文件。"""
    exe_name = platform_executable_name("swat/swat_rel64", detect_platform_family())
    bundle = write_zip(fresh_container / "deploy.zip", {exe_name: "#!/bin/sh\necho simulated\n"})
    monkeypatch.setenv("SWAT_RUNNER_DEPLOYMENT_PATH", str(bundle))
    get_settings.cache_clear()

    run = container.run_model([], workspace_root=fresh_container / "data" / "run-logged")
    container.shutdown_container_resources()

    log_file = fresh_container / "logs" / "runner" / "swat-runner.jsonl"
    entries = [json.loads(line) for line in log_file.read_text(encoding="utf-8").splitlines()]
    events = {entry["event"] for entry in entries if entry["run_id"] == "run-logged"}
    assert run.state is PipelineState.done
    assert {"pipeline.state.changed", "model.process.output", "model.process.finished"} <= events
    assert any(entry["message"] == "simulated" for entry in entries)
