from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from ._types import RunResult, _json_default


def write_json(path: Path, data: Any) -> None:
    """Write JSON atomically (best effort)."""

    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    txt = json.dumps(data, indent=2, sort_keys=False, default=_json_default)
    tmp.write_text(txt, encoding="utf-8")
    tmp.replace(path)


def write_run_result(path: Path, result: RunResult) -> None:
    write_json(Path(path), result.to_dict())
