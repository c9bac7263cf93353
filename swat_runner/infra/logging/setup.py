"""日志初始化：模型运行事件写入 JSONL 文件，ERROR 同步输出到 stderr。"""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import datetime, timezone
from logging.handlers import QueueHandler, QueueListener, RotatingFileHandler
from pathlib import Path
from queue import Queue
from typing import Any

from swat_runner.config import Settings
from swat_runner.infra.logging.context import get_log_context

# 通过 extra= 传入、原样进入 JSON 行的字段。
_EXTRA_FIELDS = ("event", "op", "error_type")
_NUMERIC_FIELDS = ("duration_ms", "exit_code", "status_code")

# SOS 地址、部署路径中的 user:password@ 部分。
_URL_CREDENTIALS = re.compile(r"(?i)\b([a-z][a-z0-9+.-]*://[^:/@\s]+:)[^@\s]+@")

_listener: QueueListener | None = None
_queue_handler: QueueHandler | None = None
_previous_root_level: int | None = None


def redact_url_credentials(text: str) -> str:
    return _URL_CREDENTIALS.sub(r"\1***@", text)


def preview_payload(payload: Any, max_chars: int) -> str | None:
    """序列化 extra 中的 payload_preview 并截断。"""
    if payload is None:
        return None
    text = payload if isinstance(payload, str) else json.dumps(payload, ensure_ascii=False, sort_keys=True, default=str)
    if len(text) > max_chars:
        text = f"{text[:max_chars]}...(truncated)"
    return text


class RunContextQueueHandler(QueueHandler):
    """入队前在调用线程中写入 run_id/stage，监听线程里 contextvars 已不可见。"""

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        ctx = get_log_context()
        for key, value in ctx.items():
            if getattr(record, key, None) is None:
                setattr(record, key, value)
        return super().prepare(record)


class RunDebugFilter(logging.Filter):
    """按 log_level 过滤；列在 debug_run_ids 中的运行额外放行 DEBUG。"""

    def __init__(self, min_level: int, debug_run_ids: set[str]) -> None:
        super().__init__()
        self._min_level = min_level
        self._debug_run_ids = debug_run_ids

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno >= self._min_level:
            return True
        run_id = getattr(record, "run_id", None) or get_log_context()["run_id"]
        return record.levelno >= logging.DEBUG and run_id in self._debug_run_ids


class JsonLinesFormatter(logging.Formatter):
    def __init__(self, *, process_role: str, redact_urls: bool, payload_preview_chars: int) -> None:
        super().__init__()
        self._process_role = process_role
        self._redact_urls = redact_urls
        self._payload_preview_chars = payload_preview_chars

    def _clean(self, text: str | None) -> str | None:
        if text is None or not self._redact_urls:
            return text
        return redact_url_credentials(text)

    def format(self, record: logging.LogRecord) -> str:
        ctx = get_log_context()
        error = getattr(record, "error", None)
        if error is None and record.exc_info:
            error = self.formatException(record.exc_info)

        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "process_role": self._process_role,
            "module": record.name,
            "run_id": getattr(record, "run_id", None) or ctx["run_id"],
            "stage": getattr(record, "stage", None) or ctx["stage"],
            "message": self._clean(record.getMessage()),
        }
        for key in _EXTRA_FIELDS:
            entry[key] = getattr(record, key, None)
        for key in _NUMERIC_FIELDS:
            value = getattr(record, key, None)
            entry[key] = value if value is None or isinstance(value, (int, float)) else None
        entry["error"] = self._clean(str(error)) if error is not None else None
        entry["payload_preview"] = self._clean(
            preview_payload(getattr(record, "payload_preview", None), self._payload_preview_chars)
        )
        return json.dumps(entry, ensure_ascii=False)


def configure_logging(settings: Settings, *, process_role: str) -> Path:
    """挂载队列 handler 到 root logger，返回 JSONL 日志文件路径。重复调用会先撤下上一次的配置。"""
    global _listener, _queue_handler, _previous_root_level
    shutdown_logging()

    log_dir = settings.log_dir if settings.log_dir.is_absolute() else (Path.cwd() / settings.log_dir).resolve()
    role_dir = log_dir / process_role
    role_dir.mkdir(parents=True, exist_ok=True)
    log_file = role_dir / "swat-runner.jsonl"

    formatter = JsonLinesFormatter(
        process_role=process_role,
        redact_urls=settings.log_redact_urls,
        payload_preview_chars=settings.log_payload_preview_chars,
    )
    file_handler = RotatingFileHandler(
        str(log_file),
        maxBytes=settings.log_max_bytes,
        backupCount=settings.log_backup_count,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)
    stderr_handler = logging.StreamHandler(stream=sys.stderr)
    stderr_handler.setLevel(logging.ERROR)
    stderr_handler.setFormatter(formatter)

    queue_obj: Queue[logging.LogRecord] = Queue()
    _queue_handler = RunContextQueueHandler(queue_obj)
    _queue_handler.addFilter(
        RunDebugFilter(
            min_level=getattr(logging, settings.log_level.upper(), logging.INFO),
            debug_run_ids=set(settings.log_debug_run_ids_list()),
        )
    )
    root = logging.getLogger()
    _previous_root_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(_queue_handler)

    _listener = QueueListener(queue_obj, file_handler, stderr_handler, respect_handler_level=True)
    _listener.start()

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    return log_file


def shutdown_logging() -> None:
    """撤下队列 handler，排空队列后关闭文件句柄。"""
    global _listener, _queue_handler, _previous_root_level
    root = logging.getLogger()
    if _queue_handler is not None:
        root.removeHandler(_queue_handler)
        _queue_handler = None
    if _previous_root_level is not None:
        root.setLevel(_previous_root_level)
        _previous_root_level = None
    if _listener is None:
        return
    listener, _listener = _listener, None
    listener.stop()
    for handler in listener.handlers:
        handler.close()
