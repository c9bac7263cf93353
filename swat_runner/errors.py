"""错误定义：统一模型执行链路与观测数据拉取的失败类型标签。"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """失败类型枚举，所有失败对当前调用均为终态。"""
    directory_creation_failure = "directory_creation_failure"
    archive_unreadable = "archive_unreadable"
    entry_not_found = "entry_not_found"
    executable_not_found = "executable_not_found"
    launch_failure = "launch_failure"
    process_interrupted = "process_interrupted"
    model_execution_failed = "model_execution_failed"
    io_failure = "io_failure"
    transport_failure = "transport_failure"
    parse_failure = "parse_failure"


class PipelineError(RuntimeError):
    """带类型标签的失败，可携带截至失败时已捕获的控制台输出。"""
    kind: ErrorKind = ErrorKind.io_failure

    def __init__(self, message: str, *, transcript: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.transcript = transcript
        # 由 pipeline 在失败时回填。
        self.failed_state = None
        self.run = None

    def __str__(self) -> str:
        return f"[{self.kind.value}] {self.message}"


class DirectoryCreationFailure(PipelineError):
    kind = ErrorKind.directory_creation_failure


class ArchiveUnreadable(PipelineError):
    kind = ErrorKind.archive_unreadable


class EntryNotFound(PipelineError):
    kind = ErrorKind.entry_not_found


class ExecutableNotFound(PipelineError):
    kind = ErrorKind.executable_not_found


class LaunchFailure(PipelineError):
    kind = ErrorKind.launch_failure


class ProcessInterrupted(PipelineError):
    kind = ErrorKind.process_interrupted


class ModelExecutionFailed(PipelineError):
    """模型进程以非零退出码结束。"""
    kind = ErrorKind.model_execution_failed

    def __init__(self, message: str, *, exit_code: int, transcript: str | None = None) -> None:
        super().__init__(message, transcript=transcript)
        self.exit_code = exit_code


class IOFailure(PipelineError):
    kind = ErrorKind.io_failure


class TransportFailure(PipelineError):
    kind = ErrorKind.transport_failure


class ParseFailure(PipelineError):
    kind = ErrorKind.parse_failure
