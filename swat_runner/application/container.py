"""依赖容器模块，负责单例化创建存储、进程与 SOS 客户端等组件。"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Sequence
from uuid import uuid4

from swat_runner.application.pipeline import ModelExecutionPipeline
from swat_runner.application.weather import ObservationFetcher, WeatherFetchJob, WeatherFetchResult
from swat_runner.config import get_settings
from swat_runner.domain.models import PipelineRun
from swat_runner.infra.logging.setup import configure_logging, shutdown_logging
from swat_runner.infra.process.locator import ExecutableLocator, locate_deployment
from swat_runner.infra.process.runner import ProcessRunner
from swat_runner.infra.sos.client import SosClient
from swat_runner.infra.storage.archive import ArchiveAccessor
from swat_runner.infra.storage.collector import OutputCollector
from swat_runner.infra.storage.workspace import WorkspaceManager


@lru_cache(maxsize=1)
def init_logging() -> Path:
    """首次运行前初始化日志，返回 JSONL 日志文件路径。"""
    return configure_logging(get_settings(), process_role="runner")


@lru_cache(maxsize=1)
def get_workspace_manager() -> WorkspaceManager:
    settings = get_settings()
    return WorkspaceManager(settings.data_root, settings.model_dir_name)


@lru_cache(maxsize=1)
def get_archive_accessor() -> ArchiveAccessor:
    return ArchiveAccessor()


@lru_cache(maxsize=1)
def get_output_collector() -> OutputCollector:
    return OutputCollector()


@lru_cache(maxsize=1)
def get_process_runner() -> ProcessRunner:
    return ProcessRunner()


@lru_cache(maxsize=1)
def get_executable_locator() -> ExecutableLocator:
    return ExecutableLocator(get_archive_accessor(), get_settings().scratch_root)


@lru_cache(maxsize=1)
def get_pipeline() -> ModelExecutionPipeline:
    """获取模型执行链路单例；部署位置在首次构建时判定一次。"""
    settings = get_settings()
    return ModelExecutionPipeline(
        settings=settings,
        deployment=locate_deployment(settings.deployment_path),
        workspace_manager=get_workspace_manager(),
        archive_accessor=get_archive_accessor(),
        executable_locator=get_executable_locator(),
        process_runner=get_process_runner(),
        output_collector=get_output_collector(),
    )


@lru_cache(maxsize=1)
def get_sos_client() -> SosClient:
    return SosClient(timeout_seconds=get_settings().sos_request_timeout_seconds)


@lru_cache(maxsize=1)
def get_observation_fetcher() -> ObservationFetcher:
    settings = get_settings()
    return ObservationFetcher(
        client=get_sos_client(),
        reference_instant=settings.sos_reference_instant,
        response_format=settings.sos_response_format,
    )


@lru_cache(maxsize=1)
def get_weather_fetch_job() -> WeatherFetchJob:
    return WeatherFetchJob(
        settings=get_settings(),
        fetcher=get_observation_fetcher(),
        workspace_manager=get_workspace_manager(),
        archive_accessor=get_archive_accessor(),
        output_collector=get_output_collector(),
    )


def run_model(input_archives: Sequence[Path] | None, workspace_root: Path | None = None) -> PipelineRun:
    """运行模型；未指定工作区时在 data_root 下为本次运行分配独立目录。"""
    init_logging()
    run_id = workspace_root.name if workspace_root is not None else str(uuid4())
    root = workspace_root or get_workspace_manager().workspace_dir(run_id)
    return get_pipeline().run(root, input_archives, run_id=run_id)


def fetch_weather(
    workspace_root: Path | None = None,
    *,
    sos_url: str | None = None,
    procedure: str | None = None,
    years: int | None = None,
) -> WeatherFetchResult:
    init_logging()
    root = workspace_root or get_workspace_manager().workspace_dir(str(uuid4()))
    return get_weather_fetch_job().run(root, sos_url=sos_url, procedure=procedure, years=years)


def shutdown_container_resources() -> None:
    """关闭共享客户端并清理依赖容器缓存。"""
    if get_sos_client.cache_info().currsize:
        get_sos_client().close()

    # 按依赖顺序清理缓存，确保后续调用可重新构建全新实例。
    for provider in (
        get_weather_fetch_job,
        get_observation_fetcher,
        get_sos_client,
        get_pipeline,
        get_executable_locator,
        get_process_runner,
        get_output_collector,
        get_archive_accessor,
        get_workspace_manager,
    ):
        provider.cache_clear()

    if init_logging.cache_info().currsize:
        shutdown_logging()
    init_logging.cache_clear()
