import tempfile
import unittest
from pathlib import Path

import yaml  # type: ignore[import-untyped]

from kanri.core.models import Row
from kanri.storage import MemoryRowSource, YamlRowSource, get_row_source


class TestYamlPersistence(unittest.TestCase):
    """Rows written by one source are read back by a fresh one."""

    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.path = (Path(self.tmpdir.name) / "task.yaml").as_posix()

    def tearDown(self) -> None:
        self.tmpdir.cleanup()

    def test_missing_file_is_empty(self) -> None:
        source = YamlRowSource("task", self.path)
        assert source.get_all().unwrap() == []

    def test_roundtrip(self) -> None:
        source = YamlRowSource("task", self.path)
        source.add({"id": "a", "text": "テスト", "tags": ["x", "y"]})
        source.add({"id": "b", "text": "child", "parent_id": "a"})

        again = YamlRowSource("task", self.path)
        rows = again.get_all().unwrap()
        assert [r.id for r in rows] == ["a", "b"]
        assert rows[0].get("text") == "テスト"
        assert rows[0].get("tags") == ["x", "y"]
        assert rows[1].parent_id == "a"

    def test_file_format(self) -> None:
        YamlRowSource("task", self.path).add({"id": 1, "text": "t"})
        with Path(self.path).open(encoding="utf-8") as f:
            raw = yaml.safe_load(f)
        assert raw == {"rows": [{"id": 1, "text": "t"}]}

    def test_malformed_file_starts_empty(self) -> None:
        Path(self.path).write_text("rows: [unclosed\n", encoding="utf-8")
        source = YamlRowSource("task", self.path)
        assert source.get_all().unwrap() == []

    def test_malformed_rows_are_skipped(self) -> None:
        Path(self.path).write_text("rows:\n  - id: a\n  - just text\n  - text: no id\n", encoding="utf-8")
        source = YamlRowSource("task", self.path)
        assert [r.id for r in source.get_all().unwrap()] == ["a"]

    def test_reload_notifies(self) -> None:
        source = YamlRowSource("task", self.path)
        seen: list[list[Row]] = []

        class Listener:
            def on_rows_changed(self, rows: list[Row]) -> None:
                seen.append(rows)

        source.subscribe(Listener())
        Path(self.path).write_text("rows:\n  - id: ext\n", encoding="utf-8")
        source.reload()
        assert len(seen) == 1
        assert [r.id for r in seen[0]] == ["ext"]

    def test_save_error_is_err(self) -> None:
        # a directory where the file should be
        Path(self.path).mkdir()
        source = YamlRowSource("task", self.path)
        res = source.add({"id": "a"})
        assert res.is_err()
        assert source.get_all().unwrap() == []


class TestGetRowSource(unittest.TestCase):
    def test_memory(self) -> None:
        source = get_row_source("note", {"STORAGE": "memory", "DATA_DIR": ""})
        assert isinstance(source, MemoryRowSource)
        assert source.kind == "note"

    def test_yaml_path(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            source = get_row_source("note", {"STORAGE": "yaml", "DATA_DIR": tmp})
            assert isinstance(source, YamlRowSource)
            assert source.data_path == Path(tmp, "note.yaml").as_posix()


if __name__ == "__main__":
    unittest.main()
