"""O&M 2.0 响应解析：将 GetObservationResponse 转换为观测值列表。"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from datetime import datetime, timezone

from swat_runner.domain.models import ObservationRecord
from swat_runner.errors import ParseFailure

NS = {
    "om": "http://www.opengis.net/om/2.0",
    "gml": "http://www.opengis.net/gml/3.2",
    "xlink": "http://www.w3.org/1999/xlink",
    "ows": "http://www.opengis.net/ows/1.1",
}

_HREF = f"{{{NS['xlink']}}}href"


def parse_timestamp(value: str) -> datetime:
    text = value.strip()
    if text.endswith("Z"):
        text = f"{text[:-1]}+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise ParseFailure(f"invalid observation time: {value!r}") from exc
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


def _observation_time(observation: ET.Element) -> datetime:
    phenomenon = observation.find("om:phenomenonTime", NS)
    if phenomenon is not None:
        for path in (".//gml:timePosition", ".//gml:endPosition"):
            node = phenomenon.find(path, NS)
            if node is not None and node.text:
                return parse_timestamp(node.text)
    raise ParseFailure("observation without phenomenonTime")


def _href(observation: ET.Element, tag: str) -> str | None:
    node = observation.find(tag, NS)
    if node is None:
        return None
    return node.get(_HREF) or (node.text or "").strip() or None


def parse_observations(xml_text: str, default_sensor_id: str = "") -> list[ObservationRecord]:
    """解析全部 om:OM_Observation；返回顺序与文档顺序一致，未排序。"""
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as exc:
        raise ParseFailure(f"malformed observation response: {exc}") from exc

    if root.tag == f"{{{NS['ows']}}}ExceptionReport":
        texts = [(node.text or "").strip() for node in root.iterfind(".//ows:ExceptionText", NS)]
        raise ParseFailure(f"service returned exception report: {'; '.join(filter(None, texts)) or 'no details'}")

    records: list[ObservationRecord] = []
    for observation in root.iter(f"{{{NS['om']}}}OM_Observation"):
        result = observation.find("om:result", NS)
        if result is None or result.text is None:
            raise ParseFailure("observation without result value")
        try:
            value = float(result.text.strip())
        except ValueError as exc:
            raise ParseFailure(f"non-numeric observation result: {result.text!r}") from exc
        records.append(
            ObservationRecord(
                timestamp=_observation_time(observation),
                value=value,
                sensor_id=_href(observation, "om:procedure") or default_sensor_id,
                unit=result.get("uom"),
                observed_property=_href(observation, "om:observedProperty"),
            )
        )
    return records
