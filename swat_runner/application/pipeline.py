"""模型执行链路：准备目录、解压输入、定位并运行模型、收集并打包输出。"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

from swat_runner.config import Settings
from swat_runner.domain.enums import PipelineState, PlatformFamily
from swat_runner.domain.models import DeploymentLocation, PipelineRun
from swat_runner.domain.platforms import detect_platform_family, platform_executable_name
from swat_runner.errors import IOFailure, ModelExecutionFailed, PipelineError
from swat_runner.infra.logging.context import bind_log_context
from swat_runner.infra.process.locator import ExecutableLocator
from swat_runner.infra.process.runner import ProcessRunner, StartHook
from swat_runner.infra.storage.archive import ArchiveAccessor
from swat_runner.infra.storage.collector import OutputCollector
from swat_runner.infra.storage.workspace import WorkspaceManager

logger = logging.getLogger(__name__)


class ModelExecutionPipeline:
    """单次调用内严格顺序执行，无重试，不清理工作目录。

    并发运行时调用方须为每次调用提供互不相交的 workspace_root。
    """

    def __init__(
        self,
        *,
        settings: Settings,
        deployment: DeploymentLocation,
        workspace_manager: WorkspaceManager,
        archive_accessor: ArchiveAccessor,
        executable_locator: ExecutableLocator,
        process_runner: ProcessRunner,
        output_collector: OutputCollector,
        platform_family: PlatformFamily | None = None,
    ) -> None:
        self._settings = settings
        self._deployment = deployment
        self._workspace_manager = workspace_manager
        self._archive_accessor = archive_accessor
        self._executable_locator = executable_locator
        self._process_runner = process_runner
        self._output_collector = output_collector
        self._platform_family = platform_family or detect_platform_family()

    @property
    def deployment(self) -> DeploymentLocation:
        return self._deployment

    def run(
        self,
        workspace_root: Path,
        input_archives: Sequence[Path] | None = None,
        *,
        run_id: str | None = None,
        on_start: StartHook | None = None,
    ) -> PipelineRun:
        run = PipelineRun()
        with bind_log_context(run_id=run_id or workspace_root.name):
            logger.info(
                "model run started",
                extra={"event": "pipeline.started", "payload_preview": {"workspace_root": str(workspace_root)}},
            )
            try:
                run.working_dirs = self._workspace_manager.prepare(workspace_root)
                self._advance(run, PipelineState.directories_ready)

                self._unpack_input(run, input_archives)
                self._advance(run, PipelineState.input_unpacked)

                exe_name = platform_executable_name(self._settings.executable_logical_name, self._platform_family)
                run.executable_path = self._executable_locator.resolve(self._deployment, exe_name)
                self._advance(run, PipelineState.executable_resolved)

                self._advance(run, PipelineState.model_running)
                model_dir = run.working_dirs.model_dir
                run.process_result = self._process_runner.run(run.executable_path, model_dir, on_start=on_start)
                if not run.process_result.completed_normally:
                    raise ModelExecutionFailed(
                        f"SWAT didn't complete successfully (exit code {run.process_result.exit_code})",
                        exit_code=run.process_result.exit_code,
                        transcript=run.transcript,
                    )

                run.output_files = self._output_collector.collect(model_dir, self._settings.output_pattern)
                if not run.output_files and self._settings.fail_on_empty_output:
                    raise IOFailure(f"no output files matched {self._settings.output_pattern}")
                self._advance(run, PipelineState.outputs_collected)

                result_archive = workspace_root / self._settings.result_archive_name
                run.outputs = self._archive_accessor.compress(run.output_files, result_archive)
                run.result_archive = result_archive
                self._advance(run, PipelineState.packaged)

                self._advance(run, PipelineState.done)
            except PipelineError as exc:
                self._record_failure(run, exc)
                raise
            except OSError as exc:
                failure = IOFailure(f"unexpected I/O error in {run.state.value}: {exc}")
                self._record_failure(run, failure)
                raise failure from exc
            except Exception as exc:
                self._fail(run, exc)
                raise
        return run

    def _record_failure(self, run: PipelineRun, exc: PipelineError) -> None:
        self._fail(run, exc)
        if exc.transcript is None and run.process_result is not None:
            exc.transcript = run.transcript
        exc.failed_state = run.history[-2]
        exc.run = run

    def _unpack_input(self, run: PipelineRun, input_archives: Sequence[Path] | None) -> None:
        assert run.working_dirs is not None
        if not input_archives:
            logger.info("no input archive supplied, skipping unpack", extra={"event": "pipeline.input.skipped"})
            return
        if len(input_archives) != 1:
            logger.info(
                "expected exactly one input archive, skipping unpack",
                extra={
                    "event": "pipeline.input.skipped",
                    "payload_preview": {"count": len(input_archives)},
                },
            )
            return
        self._archive_accessor.extract_all(input_archives[0], run.working_dirs.model_dir)

    def _advance(self, run: PipelineRun, state: PipelineState) -> None:
        run.state = state
        run.history.append(state)
        logger.info(
            "pipeline state changed",
            extra={"event": "pipeline.state.changed", "stage": state.value},
        )

    def _fail(self, run: PipelineRun, exc: Exception) -> None:
        failed_in = run.state
        self._advance(run, PipelineState.failed)
        logger.error(
            "model run failed",
            extra={
                "event": "pipeline.failed",
                "stage": failed_in.value,
                "error_type": type(exc).__name__,
                "error": str(exc),
                "exit_code": run.process_result.exit_code if run.process_result else None,
            },
        )
