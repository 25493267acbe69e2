import json
from pathlib import Path


def write(path: Path, text: str = "", executable: bool = False) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    if executable:
        path.chmod(0o755)
    return path


def read_json(path: Path) -> dict:
    return json.loads(path.read_text())
