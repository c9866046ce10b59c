import sys
from pathlib import Path

import numpy as np
import pytest

SRC = Path(__file__).resolve().parents[1] / "src"
for path in (SRC, SRC / "scripts"):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

import analyse_tiling
import plot_tiling
from aztec_sim import ShuffleConfig, ShuffleEngine


def test_frozen_mask():
    grid = np.ones((4, 4), dtype=np.int8)
    grid[0, 0] = -1
    assert analyse_tiling.frozen_mask(grid)[1:, 1:].all()
    assert not analyse_tiling.frozen_mask(grid)[0, 0]

    grid[2, 2] = 3
    mask = analyse_tiling.frozen_mask(grid)
    assert not mask[1:4, 1:4].any()
    assert mask[0, 3]


def test_temperate_radius_of_frozen_grid_is_zero():
    grid = np.full((6, 6), 2, dtype=np.int8)
    assert analyse_tiling.temperate_radius(grid) == 0.0
    grid[3, 3] = 1
    assert analyse_tiling.temperate_radius(grid) == pytest.approx(np.sqrt(9 / np.pi))


def test_fit_arctic_circle():
    orders = np.arange(10, 60, 10, dtype=np.float64)
    radii = 0.7 * orders + 1.5
    slope, intercept, r_squared = analyse_tiling.fit_arctic_circle(orders, radii)
    assert slope == pytest.approx(0.7)
    assert intercept == pytest.approx(1.5)
    assert r_squared == pytest.approx(1.0)
    with pytest.raises(ValueError):
        analyse_tiling.fit_arctic_circle(orders[:2], radii[:2])


def test_sweep_grows_radius():
    engine, orders, radii = analyse_tiling.sweep(24, samples=4, probability=0.5, seed=3)
    assert engine.order == 24
    assert orders[-1] == 24
    assert len(orders) == len(radii) >= 3
    assert radii[-1] > radii[0] > 0.0


def test_format_title():
    engine = ShuffleEngine(ShuffleConfig(probability=1.0, verbose=False)).generate(2)
    title = plot_tiling.format_title(engine)
    assert title.startswith("order=2 | p=1 | tiles=6")
    assert "L=0" in title
