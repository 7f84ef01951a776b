import copy
from abc import ABC, abstractmethod
from typing import Any, Protocol

from pyresults import Err, Ok, Result

from kanri.core.models import Row, RowId
from kanri.core.validate import detect_cycles, would_create_cycle
from kanri.util.ids import gen_row_id
from kanri.util.logger import setup_logger

logger = setup_logger("kanri", is_stream=False, is_file=True)


class RowSourceListener(Protocol):
    def on_rows_changed(self, rows: list[Row]) -> None: ...


class RowSource(ABC):
    """行ストレージ抽象基底クラス。

    1つのエンティティ種別 (task, checklist など) の行を保持する唯一の正となるストアです。
    外部に渡す行はコピーであり、変更は必ず add/update/delete を経由します。
    変更が成功するたびに購読者 (RowSourceListener) へ通知します。

    Public API:
        - load(): ストレージからデータを読み込む
        - save(): ストレージにデータを保存する
        - get_all(): 全行を挿入順で取得する
        - get(): 行IDで行を取得する
        - add(): 行を追加する (IDが無ければ採番する)
        - update(): 行を部分更新する
        - delete(): 行を削除する
        - replace_all(): 全行を置き換える (インポート)
        - subscribe() / unsubscribe(): 変更通知の購読/解除
        - notify_changed(): 外部での変更を購読者に通知する

    注意: 実装クラスは内部構造 (_rows 等) を直接公開してはいけません。
    """

    def __init__(self, kind: str) -> None:
        self.kind = kind
        self._rows: dict[RowId, Row] = {}
        self._listeners: list[RowSourceListener] = []

    # ---- 入出力 ----

    @abstractmethod
    def load(self) -> None:
        """ストレージからデータを読み込む。

        内部の_rows辞書を更新します。
        """
        raise NotImplementedError

    @abstractmethod
    def save(self) -> Result[None, str]:
        """ストレージにデータを保存する。

        Returns:
            Ok(None): 成功時
            Err(str): 失敗時 (例: 書き込みエラー)
        """
        raise NotImplementedError

    # ---- 読み込み ----

    def get_all(self) -> Result[list[Row], str]:
        """全行を挿入順で取得する。

        Returns:
            Ok(list[Row]): 成功時 (行のコピーのリスト)
            Err(str): 失敗時
        """
        return Ok[list[Row], str]([Row.from_dict(r.fields) for r in self._rows.values()])

    def get(self, row_id: RowId) -> Result[Row, str]:
        """行IDで行を取得する。

        Args:
            row_id: 取得する行のID

        Returns:
            Ok(Row): 成功時
            Err(str): 失敗時 (例: 行が見つからない)
        """
        row = self._rows.get(row_id)
        if row is None:
            _msg = f"Row not found: {row_id}"
            return Err[Row, str](_msg)
        return Ok[Row, str](Row.from_dict(row.fields))

    # ---- 行操作 ----

    def add(self, fields: dict[str, Any]) -> Result[Row, str]:
        """行を追加する。

        Args:
            fields: 追加する行のフィールド (idが無い場合は採番する)

        Returns:
            Ok(Row): 成功時 (ID付きで保存された行)
            Err(str): 失敗時 (例: 既に存在するID、parent_id の循環、保存エラー)
        """
        data = copy.deepcopy(fields)
        if data.get("id") in (None, ""):
            data["id"] = gen_row_id(self.kind)
        row = Row(data)
        if row.id in self._rows:
            return Err[Row, str](f"Row already exists: {row.id}")
        # 循環検出 (まだ存在しない行を親に持つ既存行も含めて辿る)
        if would_create_cycle(list(self._rows.values()), row.id, row.parent_id):
            return Err[Row, str](f"Cycle detected: {row.id} -> {row.parent_id}")
        self._rows[row.id] = row
        match self.save():
            case Err(e):
                # 保存に失敗したら元に戻す
                del self._rows[row.id]
                return Err[Row, str](e)
        self._notify()
        return Ok[Row, str](Row.from_dict(row.fields))

    def update(self, row_id: RowId, changes: dict[str, Any]) -> Result[Row, str]:
        """行を部分更新する (changes に含まれるキーのみ)。

        Args:
            row_id: 更新する行のID
            changes: 変更するフィールド (id は変更できない)

        Returns:
            Ok(Row): 成功時 (更新後の行)
            Err(str): 失敗時 (例: 行が見つからない、parent_id の循環、保存エラー)
        """
        current = self._rows.get(row_id)
        if current is None:
            return Err[Row, str](f"Row not found: {row_id}")
        changes = {k: v for k, v in changes.items() if k != "id"}
        if "parent_id" in changes and would_create_cycle(
            list(self._rows.values()),
            row_id,
            changes["parent_id"],
        ):
            return Err[Row, str](f"Cycle detected: {row_id} -> {changes['parent_id']}")
        updated = current.with_changes(changes)
        self._rows[row_id] = updated
        match self.save():
            case Err(e):
                self._rows[row_id] = current
                return Err[Row, str](e)
        self._notify()
        return Ok[Row, str](Row.from_dict(updated.fields))

    def delete(self, row_id: RowId) -> Result[None, str]:
        """行を削除する。

        Args:
            row_id: 削除する行のID

        Returns:
            Ok(None): 成功時
            Err(str): 失敗時 (例: 行が見つからない、保存エラー)
        """
        current = self._rows.get(row_id)
        if current is None:
            return Err[None, str](f"Row not found: {row_id}")
        del self._rows[row_id]
        match self.save():
            case Err(e):
                self._rows[row_id] = current
                return Err[None, str](e)
        self._notify()
        return Ok[None, str](None)

    def replace_all(self, rows: list[dict[str, Any]]) -> Result[int, str]:
        """全行を置き換える (インポート)。

        購読者への通知は1回だけ行います。

        Args:
            rows: 新しい行データのリスト (idが無い行は採番する)

        Returns:
            Ok(int): 成功時 (置き換えた行数)
            Err(str): 失敗時 (例: parent_id の循環、保存エラー)
        """
        previous = self._rows
        new_rows: dict[RowId, Row] = {}
        for data in rows:
            data = copy.deepcopy(data)
            if data.get("id") in (None, ""):
                data["id"] = gen_row_id(self.kind)
            new_rows[data["id"]] = Row(data)
        if cycles := detect_cycles(list(new_rows.values())):
            chain = " -> ".join(str(c) for c in cycles[0])
            return Err[int, str](f"Cycle detected: {chain}")
        self._rows = new_rows
        match self.save():
            case Err(e):
                self._rows = previous
                return Err[int, str](e)
        self._notify()
        return Ok[int, str](len(new_rows))

    # ---- 変更通知 ----

    def subscribe(self, listener: RowSourceListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: RowSourceListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def notify_changed(self) -> None:
        self._notify()

    def _notify(self) -> None:
        rows = self.get_all().unwrap()
        for listener in list(self._listeners):
            try:
                listener.on_rows_changed(rows)
            except Exception:
                _msg = f"Row listener failed: {listener!r}"
                logger.exception(_msg)
