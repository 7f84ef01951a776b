import os
import re
from pathlib import Path

DEFAULT_HOME = os.environ.get("KANRI_HOME_DIR", (Path.home() / ".kanri").as_posix())
DEFAULT_DATA_DIR = (Path(DEFAULT_HOME) / "data").as_posix()
DEFAULT_ENV_PATH = (Path(DEFAULT_HOME) / "config.env").as_posix()

STORAGE_BACKENDS = ("yaml", "memory")


def ensure_dirs(*extra: str) -> None:
    _path = Path(DEFAULT_HOME)
    _path.mkdir(parents=True, exist_ok=True)
    for p in extra:
        Path(p).mkdir(parents=True, exist_ok=True)


def load_env(path: str = DEFAULT_ENV_PATH) -> dict[str, str]:
    env: dict[str, str] = {}
    _path = Path(path)
    if _path.exists():
        with _path.open(encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line or line.startswith("#"):
                    continue
                m = re.match(r"([^=]+)=(.*)", line)
                if m:
                    key = m.group(1).strip()
                    val = m.group(2).strip()
                    env[key] = val

    # OS environment variables take precedence over config.env
    env.update(
        {
            "DATA_DIR": os.environ.get("KANRI_DATA_DIR", env.get("DATA_DIR", DEFAULT_DATA_DIR)),
            "STORAGE": os.environ.get("KANRI_STORAGE", env.get("STORAGE", "yaml")),
            "THEME": os.environ.get("KANRI_THEME", env.get("THEME", "default")),
            "THEME_PATH": os.environ.get("KANRI_THEME_PATH", env.get("THEME_PATH", "")),
        },
    )
    if env["STORAGE"] not in STORAGE_BACKENDS:
        _msg = f"Invalid storage backend: {env['STORAGE']} (expected one of {', '.join(STORAGE_BACKENDS)})"
        raise ValueError(_msg)
    return env
