"""全局配置加载模块：从环境变量构建运行参数并提供缓存访问。"""

from __future__ import annotations

import errno
import tempfile
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _csv_to_list(value: str) -> list[str]:
    """将逗号分隔字符串转换为去空白列表。"""
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """系统运行配置对象，从环境变量读取并提供类型化访问。"""
    model_config = SettingsConfigDict(
        env_prefix="SWAT_RUNNER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "SWAT Runner"
    environment: str = "dev"

    data_root: Path = Field(default=Path("./data/swat-runs"))
    scratch_root: Path = Field(default_factory=lambda: Path(tempfile.gettempdir()) / "swat-runner")
    # None 表示使用 swat_runner 包自身所在位置（目录或 zipapp）。
    deployment_path: Path | None = None

    executable_logical_name: str = "swat/swat_rel64"
    model_dir_name: str = "swatmodel"
    output_pattern: str = "output.*"
    result_archive_name: str = "swat_output.zip"
    fail_on_empty_output: bool = False

    log_dir: Path = Field(default=Path("./logs"))
    log_level: str = "INFO"
    log_debug_run_ids: str = ""
    log_redact_urls: bool = True
    log_payload_preview_chars: int = 2000
    log_max_bytes: int = 20 * 1024 * 1024
    log_backup_count: int = 5

    sos_url: str = "http://localhost:8080/52n-sos-webapp/service"
    sos_procedure: str = "http://vocab.example.com/sensorweb/procedure/gsod"
    sos_observed_property: str | None = None
    sos_response_format: str = "http://www.opengis.net/om/2.0"
    sos_years: int = Field(default=3, ge=0)
    # 查询窗口的固定截止时刻；None 表示使用当前时间。
    sos_reference_instant: datetime | None = datetime(2016, 1, 1, tzinfo=timezone.utc)
    sos_request_timeout_seconds: int = 30
    weather_archive_name: str = "weather.zip"

    def log_debug_run_ids_list(self) -> list[str]:
        return _csv_to_list(self.log_debug_run_ids)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """构建并缓存 Settings，同时确保数据根目录可写。"""
    settings = Settings()
    # 相对路径统一按当前工作目录解析，避免不同启动方式下语义漂移。
    if not settings.data_root.is_absolute():
        settings.data_root = (Path.cwd() / settings.data_root).resolve()
    try:
        settings.data_root.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        if exc.errno not in {errno.EACCES, errno.EPERM, errno.EROFS}:
            raise
        # 只读或权限受限时回退到当前工作目录下的本地路径。
        fallback = (Path.cwd() / "data" / "swat-runs").resolve()
        fallback.mkdir(parents=True, exist_ok=True)
        settings.data_root = fallback
    return settings
