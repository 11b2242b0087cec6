import json
from pathlib import Path

from .constants import SCHEMA_VERSION
from .model import Drawing


def save_drawing(path: str | Path, drawing: Drawing) -> None:
    payload = drawing.to_dict()
    payload["schema_version"] = SCHEMA_VERSION
    path = Path(path)
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")


def load_drawing(path: str | Path) -> Drawing:
    path = Path(path)
    data = json.loads(path.read_text(encoding="utf-8"))
    return Drawing.from_dict(data)
