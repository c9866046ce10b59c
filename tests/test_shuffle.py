"""
Tests for the domino shuffling engine.
"""

import io
import sys
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

SRC = Path(__file__).resolve().parents[1] / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from aztec_sim import (
    BiasImageError,
    ConfigError,
    InvariantError,
    Orientation,
    ShuffleConfig,
    ShuffleEngine,
    Tile,
    run_model,
)


def make_engine(**kwargs):
    kwargs.setdefault("verbose", False)
    return ShuffleEngine(ShuffleConfig(**kwargs))


def empty_engine(order):
    """An engine grown to ``order`` with no tiles placed."""
    engine = make_engine()
    for _ in range(order):
        engine.extend()
    return engine


def put(engine, row, col, orientation):
    tid = engine.arena.allocate()
    engine.arena.place(tid, row, col, orientation)
    for r, c in Tile(tid, row, col, orientation).cells():
        engine.lattice.write(r, c, tid)
    return tid


###############################################################################
# Fill
###############################################################################


def test_first_step_horizontal_pair():
    engine = make_engine(probability=1.0)
    engine.extend()
    assert engine.fill() == 1
    assert engine.size == 2
    assert engine.tiles() == {
        1: Tile(1, 0, 0, Orientation.TOP),
        2: Tile(2, 1, 0, Orientation.BOTTOM),
    }
    assert engine.at(0, 0) == engine.at(0, 1) == 1
    assert engine.at(1, 0) == engine.at(1, 1) == 2


def test_first_step_vertical_pair():
    engine = make_engine(probability=0.0)
    engine.step()
    assert engine.tiles() == {
        1: Tile(1, 0, 0, Orientation.LEFT),
        2: Tile(2, 0, 1, Orientation.RIGHT),
    }
    assert engine.at(0, 0) == engine.at(1, 0) == 1
    assert engine.at(0, 1) == engine.at(1, 1) == 2


def test_fill_resets_cursor():
    engine = make_engine(seed=3)
    engine.generate(4)
    assert engine.find_square() is None
    assert engine.cursor == (0, engine.lattice.row_span(0).start)


###############################################################################
# Whole runs
###############################################################################


@pytest.mark.parametrize("n", [1, 2, 5, 12])
def test_growth_and_tile_count(n):
    engine = make_engine(seed=n)
    engine.generate(n)
    assert engine.size == 2 * n
    assert engine.order == n
    assert engine.tile_count == n * (n + 1)
    assert sum(engine.counts().values()) == engine.tile_count
    engine.check_invariants()


def test_every_step_is_complete():
    engine = make_engine(seed=11)
    for n in range(1, 16):
        engine.step()
        engine.check_invariants(complete=True)
        grid = engine.orientation_grid()
        assert not np.any(grid == 0), "no cell may be left empty after a step"


@pytest.mark.parametrize(
    "probability, present, absent",
    [
        (1.0, (Orientation.TOP, Orientation.BOTTOM), (Orientation.LEFT, Orientation.RIGHT)),
        (0.0, (Orientation.LEFT, Orientation.RIGHT), (Orientation.TOP, Orientation.BOTTOM)),
    ],
)
def test_extreme_probabilities_keep_one_direction(probability, present, absent):
    engine = make_engine(probability=probability)
    engine.generate(8)
    counts = engine.counts()
    assert counts[absent[0]] == counts[absent[1]] == 0
    assert counts[present[0]] == counts[present[1]] == engine.tile_count // 2
    engine.check_invariants()


def test_same_seed_replays_identically():
    a = make_engine(seed=2024).generate(10)
    b = make_engine(seed=2024).generate(10)
    c = make_engine(seed=2025).generate(10)
    assert np.array_equal(a.arena.to_array(), b.arena.to_array())
    assert np.array_equal(a.lattice.dense(), b.lattice.dense())
    assert not np.array_equal(a.orientation_grid(), c.orientation_grid())


def test_injected_generator_is_used():
    a = ShuffleEngine(ShuffleConfig(verbose=False), rng=np.random.default_rng(5)).generate(6)
    b = make_engine(seed=5).generate(6)
    assert np.array_equal(a.arena.to_array(), b.arena.to_array())


def test_preallocated_and_growing_lattices_agree():
    grown = make_engine(seed=9).generate(13)
    prealloc = make_engine(seed=9, max_order=13).generate(13)
    assert prealloc.lattice.capacity == 26
    assert grown.lattice.capacity != prealloc.lattice.capacity
    assert np.array_equal(grown.arena.to_array(), prealloc.arena.to_array())
    assert np.array_equal(grown.lattice.dense(), prealloc.lattice.dense())


def test_ids_are_recycled():
    engine = make_engine(seed=1)
    engine.generate(20)
    # Each fill drains the free-list before new ids are minted.
    assert not engine.arena.free_ids
    assert engine.arena.next_id - 1 == engine.tile_count
    engine.check_invariants()


def test_run_model_accepts_dict():
    engine = run_model({"seed": 0, "verbose": False}, steps=6)
    assert engine.tile_count == 42
    engine.check_invariants()


def test_generate_prints_progress(capsys):
    ShuffleEngine(ShuffleConfig(seed=0)).generate(20)
    out = capsys.readouterr().out
    assert "[shuffle] 20/20 steps" in out
    assert "420 dominoes" in out

    make_engine(seed=0).generate(3)
    assert capsys.readouterr().out == ""


###############################################################################
# Elimination and move
###############################################################################


def test_colliding_vertical_pair_is_eliminated():
    engine = empty_engine(2)
    b = put(engine, 1, 1, Orientation.BOTTOM)
    t = put(engine, 2, 1, Orientation.TOP)
    assert engine.eliminate_stuck_tiles() == 1
    assert engine.tile_count == 0
    assert not np.any(engine.lattice.dense() > 0)
    assert list(engine.arena.free_ids) == [b, t]
    assert engine.arena.allocate() == b
    assert engine.arena.allocate() == t
    assert engine.arena.allocate() == 3


def test_colliding_horizontal_pair_is_eliminated():
    engine = empty_engine(2)
    r = put(engine, 1, 0, Orientation.RIGHT)
    l = put(engine, 1, 1, Orientation.LEFT)
    keep = put(engine, 0, 1, Orientation.TOP)
    assert engine.eliminate_stuck_tiles() == 1
    assert list(engine.arena.free_ids) == [r, l]
    assert engine.tiles() == {keep: Tile(keep, 0, 1, Orientation.TOP)}
    for row, col in [(1, 0), (2, 0), (1, 1), (2, 1)]:
        assert engine.at(row, col) == 0


def test_bottom_tile_at_row_start_is_not_eliminated():
    """A Bottom half anchored on the first column of a row is skipped."""
    engine = empty_engine(2)
    put(engine, 0, 1, Orientation.BOTTOM)
    put(engine, 1, 1, Orientation.TOP)
    assert engine.eliminate_stuck_tiles() == 0
    assert engine.tile_count == 2


def test_tiles_moving_apart_are_kept():
    engine = empty_engine(2)
    put(engine, 1, 1, Orientation.TOP)
    put(engine, 2, 1, Orientation.BOTTOM)
    assert engine.eliminate_stuck_tiles() == 0


def test_move_slides_each_tile_one_cell():
    engine = empty_engine(2)
    t = put(engine, 1, 1, Orientation.TOP)
    b = put(engine, 2, 1, Orientation.BOTTOM)
    engine.move_tiles()
    assert engine.tile(t).position == (0, 1)
    assert engine.tile(b).position == (3, 1)
    assert engine.at(0, 1) == engine.at(0, 2) == t
    assert engine.at(3, 1) == engine.at(3, 2) == b
    for row in (1, 2):
        for col in range(4):
            assert engine.at(row, col) == 0
    engine.check_invariants(complete=False)


def test_move_into_cell_vacated_by_later_tile():
    engine = empty_engine(2)
    lower = put(engine, 2, 1, Orientation.TOP)
    upper = put(engine, 1, 1, Orientation.TOP)
    engine.move_tiles()
    assert engine.at(0, 1) == upper
    assert engine.at(1, 1) == engine.at(1, 2) == lower
    assert engine.at(2, 1) == engine.at(2, 2) == 0
    engine.check_invariants(complete=False)


def test_move_out_of_diamond_raises():
    engine = empty_engine(2)
    put(engine, 0, 1, Orientation.TOP)
    with pytest.raises(InvariantError):
        engine.move_tiles()


def test_extend_shifts_tiles():
    engine = make_engine(probability=1.0)
    engine.step()
    engine.extend()
    assert engine.tile(1).position == (1, 1)
    assert engine.at(1, 1) == 1
    assert engine.at(2, 2) == 2


###############################################################################
# Validation and bias
###############################################################################


@pytest.mark.parametrize("probability", [-0.1, 1.5, float("nan"), "0.5", True])
def test_invalid_probability_rejected(probability):
    with pytest.raises(ConfigError):
        ShuffleEngine(ShuffleConfig(probability=probability))


@pytest.mark.parametrize("n", [0, -3, 2.5, "4", None])
def test_invalid_step_count_rejected(n):
    engine = make_engine()
    with pytest.raises(ConfigError):
        engine.generate(n)
    assert engine.size == 0


def test_bias_with_wrong_shape_rejected_before_mutation():
    engine = make_engine(seed=0).generate(2)
    before = engine.arena.to_array()
    with pytest.raises(ConfigError):
        engine.step(np.zeros((4, 4), dtype=np.uint8))
    with pytest.raises(ConfigError):
        engine.generate(1, np.zeros((5, 5)))
    assert engine.size == 4
    assert np.array_equal(engine.arena.to_array(), before)


@pytest.mark.parametrize(
    "value, probability, expected",
    [
        (0, 0.0, Orientation.TOP),
        (127, 0.0, Orientation.TOP),
        (193, 1.0, Orientation.LEFT),
        (255, 1.0, Orientation.LEFT),
    ],
)
def test_bias_overrides_probability(value, probability, expected):
    engine = make_engine(probability=probability)
    engine.step(np.full((2, 2), value, dtype=np.uint8))
    assert engine.tile(1).orientation == expected


def test_middle_bias_flips_a_fair_coin():
    orientations = set()
    for seed in range(40):
        engine = make_engine(probability=1.0, seed=seed)
        engine.step(np.full((2, 2), 160, dtype=np.uint8))
        orientations.add(engine.tile(1).orientation)
    assert orientations == {Orientation.TOP, Orientation.LEFT}


def test_generate_with_image_bytes():
    buf = io.BytesIO()
    Image.new("L", (3, 3), 0).save(buf, format="PNG")
    engine = make_engine(probability=0.0, seed=4)
    engine.generate(3, buf.getvalue())
    assert engine.size == 6
    engine.check_invariants()


def test_missing_bias_image(tmp_path):
    missing = tmp_path / "missing.png"
    engine = make_engine(seed=0)
    with pytest.raises(BiasImageError):
        engine.generate(3, str(missing))
    assert engine.size == 0

    fallback = make_engine(seed=0, allow_unbiased_fallback=True)
    fallback.generate(3, str(missing))
    assert fallback.size == 6
    fallback.check_invariants()


###############################################################################
# Invariants and state
###############################################################################


def test_check_invariants_detects_corruption():
    engine = make_engine(seed=7).generate(4)
    tile = next(engine.iter_tiles())
    row, col = tile.cells()[1]
    engine.lattice.write(row, col, 0)
    with pytest.raises(InvariantError):
        engine.check_invariants(complete=False)


def test_check_invariants_detects_holes():
    engine = empty_engine(1)
    engine.check_invariants(complete=False)
    with pytest.raises(InvariantError):
        engine.check_invariants()


def test_state_round_trip_continues_identically():
    first = make_engine(seed=31).generate(5)
    restored = ShuffleEngine.from_state(first.to_state(), ShuffleConfig(verbose=False))
    assert restored.order == 5
    assert restored.tiles() == first.tiles()

    first.step()
    restored.step()
    assert np.array_equal(first.arena.to_array(), restored.arena.to_array())
    assert np.array_equal(first.lattice.dense(), restored.lattice.dense())
    assert list(first.arena.free_ids) == list(restored.arena.free_ids)


def test_state_keeps_probability():
    engine = make_engine(probability=0.25, seed=1).generate(2)
    restored = ShuffleEngine.from_state(engine.to_state(), ShuffleConfig(probability=0.9, verbose=False))
    assert restored.probability == 0.25


def test_fill_rescans_from_top_when_cursor_is_past_holes():
    engine = make_engine(seed=8).generate(3)
    engine.eliminate_stuck_tiles()
    engine.extend()
    engine.move_tiles()
    engine.cursor = (engine.size - 2, engine.size // 2)
    engine.fill()
    engine.check_invariants()
