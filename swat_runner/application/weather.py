"""气象观测拉取：按时间窗口查询 SOS，按时间排序并报告最新观测。"""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from swat_runner.config import Settings
from swat_runner.domain.models import ArchiveEntry, ObservationReport
from swat_runner.errors import IOFailure
from swat_runner.infra.logging.context import bind_log_context
from swat_runner.infra.sos.client import ObservationQuery, SosClient
from swat_runner.infra.sos.parser import parse_observations
from swat_runner.infra.storage.archive import ArchiveAccessor
from swat_runner.infra.storage.collector import OutputCollector
from swat_runner.infra.storage.workspace import WorkspaceManager

logger = logging.getLogger(__name__)

OBSERVATIONS_FILENAME = "output.observations.csv"


class ObservationFetcher:
    def __init__(
        self,
        *,
        client: SosClient,
        reference_instant: datetime | None,
        response_format: str | None = "http://www.opengis.net/om/2.0",
    ) -> None:
        self._client = client
        self._reference_instant = reference_instant
        self._response_format = response_format

    def fetch(
        self,
        sos_url: str,
        procedure: str,
        years: int,
        observed_property: str | None = None,
    ) -> ObservationReport:
        query = ObservationQuery.for_window(
            procedure=procedure,
            years=years,
            reference_instant=self._reference_instant,
            observed_property=observed_property,
            response_format=self._response_format,
        )
        body = self._client.get_observation(sos_url, query)
        series = sorted(parse_observations(body, default_sensor_id=procedure), key=lambda item: item.timestamp)
        report = ObservationReport(sensor_id=procedure, series=tuple(series))
        logger.info(
            report.status,
            extra={
                "event": "sos.observations.fetched",
                "payload_preview": {"procedure": procedure, "count": len(series), "temporal_filter": query.temporal_filter},
            },
        )
        return report


@dataclass(slots=True)
class WeatherFetchResult:
    """气象拉取结果：观测报告、打包条目与压缩包路径。"""
    report: ObservationReport
    archive_path: Path
    entries: list[ArchiveEntry]


class WeatherFetchJob:
    """拉取观测序列并写入工作区，再按输出模式打包为 weather 压缩包。"""
    def __init__(
        self,
        *,
        settings: Settings,
        fetcher: ObservationFetcher,
        workspace_manager: WorkspaceManager,
        archive_accessor: ArchiveAccessor,
        output_collector: OutputCollector,
    ) -> None:
        self._settings = settings
        self._fetcher = fetcher
        self._workspace_manager = workspace_manager
        self._archive_accessor = archive_accessor
        self._output_collector = output_collector

    def run(
        self,
        workspace_root: Path,
        *,
        sos_url: str | None = None,
        procedure: str | None = None,
        years: int | None = None,
    ) -> WeatherFetchResult:
        with bind_log_context(run_id=workspace_root.name):
            dirs = self._workspace_manager.prepare(workspace_root)
            report = self._fetcher.fetch(
                sos_url or self._settings.sos_url,
                procedure or self._settings.sos_procedure,
                self._settings.sos_years if years is None else years,
                observed_property=self._settings.sos_observed_property,
            )
            self._write_series(dirs.model_dir / OBSERVATIONS_FILENAME, report)
            files = self._output_collector.collect(dirs.model_dir, self._settings.output_pattern)
            archive_path = workspace_root / self._settings.weather_archive_name
            entries = self._archive_accessor.compress(files, archive_path)
        return WeatherFetchResult(report=report, archive_path=archive_path, entries=entries)

    @staticmethod
    def _write_series(path: Path, report: ObservationReport) -> None:
        try:
            with path.open("w", encoding="utf-8", newline="") as handle:
                writer = csv.writer(handle)
                writer.writerow(["timestamp", "value", "unit", "sensor_id", "observed_property"])
                for record in report.series:
                    writer.writerow(
                        [
                            record.timestamp.isoformat(),
                            record.value,
                            record.unit or "",
                            record.sensor_id,
                            record.observed_property or "",
                        ]
                    )
        except OSError as exc:
            raise IOFailure(f"could not write observations to {path}: {exc}") from exc
