from pathlib import Path

from kanri.storage.base import RowSource, RowSourceListener
from kanri.storage.memory_store import MemoryRowSource
from kanri.storage.yaml_store import YamlRowSource
from kanri.util.dirs import load_env

__all__ = [
    "MemoryRowSource",
    "RowSource",
    "RowSourceListener",
    "YamlRowSource",
    "get_row_source",
]


def get_row_source(kind: str, env: dict[str, str] | None = None) -> RowSource:
    env = env or load_env()
    match env["STORAGE"]:
        case "memory":
            return MemoryRowSource(kind)
        case "yaml":
            return YamlRowSource(kind, (Path(env["DATA_DIR"]) / f"{kind}.yaml").as_posix())
        case backend:
            _msg = f"Invalid storage backend: {backend}"
            raise ValueError(_msg)
