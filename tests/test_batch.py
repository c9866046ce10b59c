import sys
from pathlib import Path

SRC = Path(__file__).resolve().parents[1] / "src"
for path in (SRC, SRC / "scripts"):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

import run_batch
from aztec_sim import utils


def test_run_single_tiling(tmp_path):
    output = tmp_path / "7.npz"
    result = run_batch.run_single_tiling(4, 7, 0.5, str(output), tile_size=2)

    assert result["success"]
    assert result["seed"] == 7
    assert result["order"] == 4
    assert result["tiles"] == 20
    assert sum(result["counts"].values()) == 20
    assert set(result["counts"]) == {"top", "bottom", "left", "right"}
    assert Path(result["image_path"]).read_bytes().startswith(b"\x89PNG")

    engine = utils.load_snapshot(output)
    assert engine.order == 4
    engine.check_invariants()


def test_run_single_tiling_without_image(tmp_path):
    result = run_batch.run_single_tiling(2, 1, 0.5, str(tmp_path / "1.npz"))
    assert result["image_path"] is None
    assert result["tiles"] == 6
