# file: src/equity_forecast/io_utils.py
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict

import pandas as pd


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def _replace_from_tmp(path: Path, write) -> None:
    ensure_dir(path.parent)
    tmp = path.with_suffix(path.suffix + ".tmp")
    write(tmp)
    os.replace(tmp, path)


def atomic_write_csv(df: pd.DataFrame, path: Path, index: bool = False) -> None:
    """
    Atomic CSV write: write to temp in same directory, then replace.
    """
    _replace_from_tmp(path, lambda tmp: df.to_csv(tmp, index=index))


def atomic_write_json(payload: Dict[str, Any], path: Path) -> None:
    def _write(tmp: Path) -> None:
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, default=str)

    _replace_from_tmp(path, _write)


def atomic_write_text(text: str, path: Path) -> None:
    _replace_from_tmp(path, lambda tmp: tmp.write_text(text, encoding="utf-8"))
