# src/aztec_sim/utils.py
from __future__ import annotations

import json
import os
import pickle
import time
import tomllib
import zipfile
from pathlib import Path
from typing import Any, Dict

import numpy as np

from .errors import SnapshotError
from .shuffle_sim import ShuffleConfig, ShuffleEngine

# Engine state keys stored as arrays; everything else goes into ``meta``.
_ARRAY_KEYS = ("cells", "tiles", "free_ids")


def now_str() -> str:
    return time.strftime("%Y%m%d-%H%M%S")


###############################################################################
# Snapshots
###############################################################################


def state_to_json(state: Dict[str, Any]) -> str:
    """Serializes an engine state; tiles become an ``id -> [row, col, orientation]`` mapping."""
    out = {key: value for key, value in state.items() if key not in _ARRAY_KEYS}
    out["cells"] = np.asarray(state["cells"]).astype(np.int64).tolist()
    out["tiles"] = {
        str(int(tid)): [int(row), int(col), int(orientation)]
        for tid, row, col, orientation in np.asarray(state["tiles"]).reshape(-1, 4)
    }
    out["free_ids"] = [int(t) for t in np.asarray(state["free_ids"]).ravel()]
    return json.dumps(out)


def state_from_json(text: str) -> Dict[str, Any]:
    try:
        raw = json.loads(text)
        state = dict(raw)
        state["cells"] = np.asarray(raw["cells"], dtype=np.int64)
        state["tiles"] = np.array(
            [[int(tid), *values] for tid, values in raw["tiles"].items()],
            dtype=np.int64,
        ).reshape(-1, 4)
        state["free_ids"] = np.asarray(raw["free_ids"], dtype=np.int64)
    except (json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError, OverflowError) as exc:
        raise SnapshotError(f"could not parse snapshot JSON: {exc}") from exc
    return state


def save_snapshot(
    path: str | os.PathLike[str], engine: ShuffleEngine, *, overwrite: bool = True
) -> None:
    """
    Writes the full engine state to ``.json`` or ``.npz`` (chosen by suffix).
    """
    path = Path(path)
    if not overwrite and path.exists():
        raise FileExistsError(f"{path} already exists")
    path.parent.mkdir(parents=True, exist_ok=True)
    state = engine.to_state()
    if path.suffix.lower() == ".json":
        path.write_text(state_to_json(state), encoding="utf-8")
        return
    meta = {key: value for key, value in state.items() if key not in _ARRAY_KEYS}
    # Through a handle so numpy does not append ".npz" to the path.
    with open(path, "wb") as fh:
        np.savez_compressed(
            fh,
            cells=state["cells"],
            tiles=state["tiles"],
            free_ids=state["free_ids"],
            meta=meta,
        )


def load_snapshot(
    path: str | os.PathLike[str], config: ShuffleConfig | None = None
) -> ShuffleEngine:
    """
    Restores an engine saved with :func:`save_snapshot`.

    Any failure (missing file, corrupt data, inconsistent state) raises
    ``SnapshotError``; no partially built engine is returned.
    """
    path = Path(path)
    try:
        if path.suffix.lower() == ".json":
            state = state_from_json(path.read_text(encoding="utf-8"))
        else:
            with np.load(path, allow_pickle=True) as data:
                meta_raw = data["meta"]
                state = dict(meta_raw.item() if hasattr(meta_raw, "item") else meta_raw)
                for key in _ARRAY_KEYS:
                    state[key] = data[key]
    except SnapshotError:
        raise
    except (
        OSError,
        KeyError,
        ValueError,
        TypeError,
        EOFError,
        pickle.UnpicklingError,
        zipfile.BadZipFile,
    ) as exc:
        raise SnapshotError(f"could not load snapshot {path}: {exc}") from exc
    return ShuffleEngine.from_state(state, config)


###############################################################################
# Parameter files
###############################################################################


def load_params(path: str | os.PathLike[str]) -> Dict[str, Any]:
    """
    Load run parameters from JSON or TOML.
    """
    path = str(path)
    with open(path, "rb") as fh:
        data = fh.read()
    suffix = Path(path).suffix.lower()
    if suffix in {".json", ""}:
        return json.loads(data.decode("utf-8"))
    if suffix in {".toml", ".tml"}:
        return tomllib.loads(data.decode("utf-8"))
    raise ValueError(f"Unsupported parameter file format: {suffix}")
