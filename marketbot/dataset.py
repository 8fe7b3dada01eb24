# marketbot/dataset.py
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Union

logger = logging.getLogger(__name__)


def _ensure_parent(path: Path) -> None:
    if path.parent and str(path.parent) not in ("", "."):
        path.parent.mkdir(parents=True, exist_ok=True)


def append_jsonl(path: Union[str, Path], entry: Dict[str, Any]) -> None:
    path = Path(path)
    _ensure_parent(path)

    if "timestamp" not in entry:
        entry["timestamp"] = datetime.now(timezone.utc).isoformat()

    with path.open("a", encoding="utf-8") as f:
        json.dump(entry, f, ensure_ascii=False, default=str)
        f.write("\n")


def append_unhandled_entry(path: Union[str, Path], entry: Dict[str, Any]) -> None:
    """
    Messages the bot could not act on, kept for reviewing intents and
    patterns later. A failed write is logged and otherwise ignored.
    """
    try:
        append_jsonl(path, entry)
    except OSError:
        logger.exception("[DATASET] could not write unhandled entry to %s", path)
