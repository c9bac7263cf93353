"""输出收集测试：验证递归通配匹配与空结果行为。"""

from __future__ import annotations

from pathlib import Path

from swat_runner.infra.storage.collector import OutputCollector


def test_collect_matches_pattern_at_any_depth(tmp_path: Path) -> None:
    nested = tmp_path / "level1" / "level2"
    nested.mkdir(parents=True)
    for name in ("output.txt", "output.csv", "notes.txt"):
        (nested / name).write_text(name)

    result = OutputCollector().collect(tmp_path, "output.*")

    assert result == [nested / "output.csv", nested / "output.txt"]


def test_collect_excludes_directories(tmp_path: Path) -> None:
    (tmp_path / "output.dir").mkdir()
    (tmp_path / "output.std").write_text("x")

    result = OutputCollector().collect(tmp_path, "output.*")

    assert result == [tmp_path / "output.std"]


def test_collect_single_character_wildcard(tmp_path: Path) -> None:
    for name in ("output.rch", "output.sub", "output.hru1"):
        (tmp_path / name).write_text(name)

    result = OutputCollector().collect(tmp_path, "output.???")

    assert [path.name for path in result] == ["output.rch", "output.sub"]


def test_collect_empty_result_is_not_an_error(tmp_path: Path) -> None:
    (tmp_path / "input.txt").write_text("x")

    assert OutputCollector().collect(tmp_path, "output.*") == []
    assert OutputCollector().collect(tmp_path / "missing", "output.*") == []
