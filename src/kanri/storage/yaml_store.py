from pathlib import Path

import yaml  # type: ignore[import-untyped]
from pyresults import Err, Ok, Result

from kanri.core.models import Row, RowId
from kanri.storage.base import RowSource
from kanri.util.logger import setup_logger

logger = setup_logger("kanri", is_stream=False, is_file=True)


class YamlRowSource(RowSource):
    """YAMLファイルを使った行ストレージ。

    エンティティ種別ごとに1ファイル (`{"rows": [{...}, ...]}`) を読み書きします。

    Args:
        kind: エンティティ種別 (task, checklist など)
        data_path: YAMLファイルのパス
    """

    def __init__(self, kind: str, data_path: str) -> None:
        super().__init__(kind)
        self.data_path = data_path
        self.load()

    # ---- 基本IO ----

    def load(self) -> None:
        _path = Path(self.data_path)
        rows: dict[RowId, Row] = {}
        if _path.exists():
            try:
                with _path.open(encoding="utf-8") as f:
                    raw = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError):
                _msg = f"Failed to load YAML file: {_path}"
                logger.exception(_msg)
                # 読み込めない場合は空の状態で開く
                self._rows = {}
                return
            if not isinstance(raw, dict):
                _msg = f"Unexpected YAML layout in {_path}: expected a mapping with \"rows\""
                logger.warning(_msg)
                raw = {}
            for data in raw.get("rows", []) or []:
                if not isinstance(data, dict) or data.get("id") in (None, ""):
                    _msg = f"Skipping malformed row in {_path}: {data!r}"
                    logger.warning(_msg)
                    continue
                rows[data["id"]] = Row.from_dict(data)
        self._rows = rows

    def save(self) -> Result[None, str]:
        """全行をYAMLファイルに書き出す。

        Returns:
            Ok(None): 成功時
            Err(str): 失敗時 (例: ディレクトリが作成できない、書き込みエラー)
        """
        raw = {"rows": [r.to_dict() for r in self._rows.values()]}
        _path = Path(self.data_path)
        try:
            _path.parent.mkdir(parents=True, exist_ok=True)
            with _path.open("w", encoding="utf-8") as f:
                yaml.safe_dump(raw, f, allow_unicode=True, sort_keys=False)
        except (OSError, yaml.YAMLError) as e:
            _msg = f"Failed to save {_path}: {e}"
            logger.exception(_msg)
            return Err[None, str](_msg)
        return Ok[None, str](None)

    def reload(self) -> None:
        """ファイルを再読み込みし、購読者に通知する (他プロセスによる変更の反映)。"""
        self.load()
        self.notify_changed()
