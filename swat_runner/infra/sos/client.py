"""SOS HTTP 客户端：构造 GetObservation KVP 查询并取回响应文本。"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import MINYEAR, datetime, timezone

import httpx

from swat_runner.errors import TransportFailure

logger = logging.getLogger(__name__)

TEMPORAL_VALUE_REFERENCE = "om:phenomenonTime"


def minus_years(instant: datetime, years: int) -> datetime:
    """按日历年回退；2 月 29 日落到非闰年时取 2 月 28 日。"""
    if years < 0 or instant.year - years < MINYEAR:
        raise ValueError(f"years must be between 0 and {instant.year - MINYEAR}, got {years}")
    try:
        return instant.replace(year=instant.year - years)
    except ValueError:
        return instant.replace(year=instant.year - years, day=28)


def format_instant(instant: datetime) -> str:
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.isoformat(timespec="milliseconds")


@dataclass(slots=True)
class ObservationQuery:
    """GetObservation 查询参数；空值参数不会出现在请求中。"""
    procedure: str | None
    start: datetime
    end: datetime
    observed_property: str | None = None
    response_format: str | None = "http://www.opengis.net/om/2.0"

    @classmethod
    def for_window(
        cls,
        *,
        procedure: str | None,
        years: int,
        reference_instant: datetime | None,
        observed_property: str | None = None,
        response_format: str | None = "http://www.opengis.net/om/2.0",
    ) -> "ObservationQuery":
        """构造 [reference - years, reference] 时间窗口；reference 为空时取当前时间。"""
        end = reference_instant or datetime.now(timezone.utc)
        return cls(
            procedure=procedure,
            start=minus_years(end, years),
            end=end,
            observed_property=observed_property,
            response_format=response_format,
        )

    @property
    def temporal_filter(self) -> str:
        return f"{TEMPORAL_VALUE_REFERENCE},{format_instant(self.start)}/{format_instant(self.end)}"

    def params(self) -> list[tuple[str, str]]:
        params = [
            ("service", "SOS"),
            ("version", "2.0.0"),
            ("request", "GetObservation"),
        ]
        optional = (
            ("procedure", self.procedure),
            ("observedProperty", self.observed_property),
            ("responseFormat", self.response_format),
            ("temporalFilter", self.temporal_filter),
        )
        params.extend((key, value) for key, value in optional if value)
        return params


class SosClient:
    """SOS 同步 HTTP 客户端封装，不做重试。"""
    def __init__(
        self,
        timeout_seconds: int = 30,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._closed = False
        self._client = httpx.Client(
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
            follow_redirects=True,
        )

    def _client_or_raise(self) -> httpx.Client:
        if self._closed:
            raise RuntimeError("SosClient is already closed")
        return self._client

    def close(self) -> None:
        """关闭底层 HTTP 客户端连接池。"""
        if self._closed:
            return
        self._client.close()
        self._closed = True

    def get_observation(self, sos_url: str, query: ObservationQuery) -> str:
        """发送 GetObservation 请求并返回响应正文，网络或 HTTP 状态错误统一为 TransportFailure。"""
        params = query.params()
        started = time.perf_counter()
        try:
            response = self._client_or_raise().get(sos_url, params=params)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            duration_ms = round((time.perf_counter() - started) * 1000, 2)
            status_code = None
            if isinstance(exc, httpx.HTTPStatusError):
                status_code = exc.response.status_code
            logger.error(
                "sos request failed",
                extra={
                    "event": "sos.request.failed",
                    "op": "sos.get_observation",
                    "duration_ms": duration_ms,
                    "status_code": status_code,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                    "payload_preview": dict(params),
                },
            )
            raise TransportFailure(f"GetObservation request to {sos_url} failed: {exc}") from exc

        logger.info(
            "sos request completed",
            extra={
                "event": "sos.request.completed",
                "op": "sos.get_observation",
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                "status_code": response.status_code,
                "payload_preview": {"bytes": len(response.content)},
            },
        )
        return response.text
