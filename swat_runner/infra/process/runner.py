"""子进程运行器：在指定目录启动模型程序并同步读取合并输出流。"""

from __future__ import annotations

import logging
import subprocess
import time
from pathlib import Path
from typing import Callable

from swat_runner.domain.models import ProcessResult
from swat_runner.errors import LaunchFailure, ProcessInterrupted

logger = logging.getLogger(__name__)

StartHook = Callable[[subprocess.Popen], None]


class ProcessRunner:
    """不带策略的进程运行器：非零退出码只作为结果返回，由调用方决定是否致命。

    本类不设超时。需要限时的调用方可通过 on_start 拿到 Popen 对象，
    自行安排到期后 kill()；读取循环会在输出流关闭后正常结束。
    """

    def run(self, executable_path: Path, working_directory: Path, on_start: StartHook | None = None) -> ProcessResult:
        command = [str(executable_path)]
        started = time.perf_counter()
        try:
            process = subprocess.Popen(
                command,
                cwd=str(working_directory),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
            )
        except OSError as exc:
            logger.error(
                "model process could not be started",
                extra={
                    "event": "model.process.launch.failed",
                    "op": " ".join(command),
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )
            raise LaunchFailure(f"could not start {executable_path}: {exc}") from exc

        logger.info(
            "model process started",
            extra={
                "event": "model.process.started",
                "op": " ".join(command),
                "payload_preview": {"pid": process.pid, "cwd": str(working_directory)},
            },
        )
        lines: list[str] = []
        try:
            if on_start is not None:
                on_start(process)
            assert process.stdout is not None
            # 逐行读取直到流结束，进程挂起时已产生的输出也能实时落日志。
            for raw_line in process.stdout:
                line = raw_line.rstrip("\r\n")
                lines.append(line)
                logger.info(line, extra={"event": "model.process.output"})
            exit_code = process.wait()
        except KeyboardInterrupt as exc:
            self._terminate(process)
            logger.error(
                "model process interrupted",
                extra={"event": "model.process.interrupted", "op": " ".join(command), "exit_code": process.returncode},
            )
            transcript = "".join(f"{line}\n" for line in lines)
            raise ProcessInterrupted(f"run of {executable_path} was interrupted", transcript=transcript) from exc
        except BaseException as exc:
            self._terminate(process)
            logger.error(
                "model process aborted",
                extra={
                    "event": "model.process.aborted",
                    "op": " ".join(command),
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )
            raise
        finally:
            if process.stdout is not None:
                process.stdout.close()

        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        logger.info(
            "model process finished",
            extra={
                "event": "model.process.finished",
                "op": " ".join(command),
                "exit_code": exit_code,
                "duration_ms": duration_ms,
                "payload_preview": {"lines": len(lines)},
            },
        )
        return ProcessResult(exit_code=exit_code, lines=tuple(lines), completed_normally=exit_code == 0)

    @staticmethod
    def _terminate(process: subprocess.Popen) -> None:
        """结束并回收子进程，调用方异常退出时不留下孤儿进程。"""
        if process.poll() is None:
            process.kill()
        process.wait()
