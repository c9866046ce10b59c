"""
Arctic Circle Analysis for Aztec Diamond Tilings.

Random tilings of large Aztec diamonds freeze into brickwork near the four
corners, outside a circle inscribed in the diamond. For a diamond of order
n (side 2n cells) that circle has radius n / sqrt(2).

The script grows one tiling, measures the area of the disordered
("temperate") region at a sweep of orders and fits its equivalent radius
sqrt(A / pi) against the order:
    r(n) = slope * n + c,   slope -> 1 / sqrt(2) for p = 0.5
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

import numpy as np
from matplotlib import pyplot as plt
from scipy.stats import linregress

SRC = Path(__file__).resolve().parents[1]
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from aztec_sim import ShuffleConfig, ShuffleEngine  # type: ignore[import]

EXPECTED_SLOPE = 1.0 / np.sqrt(2.0)


def frozen_mask(grid: np.ndarray) -> np.ndarray:
    """
    Cells whose whole 3x3 neighbourhood carries the cell's own orientation.

    ``grid`` is an orientation grid (-1 outside the diamond); outside cells
    never break a frozen neighbourhood.
    """
    padded = np.pad(grid, 1, constant_values=-1)
    h, w = grid.shape
    frozen = grid > 0
    for dy in (-1, 0, 1):
        for dx in (-1, 0, 1):
            if dy == 0 and dx == 0:
                continue
            shifted = padded[1 + dy : 1 + dy + h, 1 + dx : 1 + dx + w]
            frozen &= (shifted == grid) | (shifted == -1)
    return frozen


def temperate_radius(grid: np.ndarray) -> float:
    """Radius of a disc with the same area as the non-frozen region."""
    inside = grid >= 0
    area = np.count_nonzero(inside & ~frozen_mask(grid))
    return float(np.sqrt(area / np.pi))


def sweep(max_order: int, samples: int, probability: float, seed: int | None):
    """Grows one tiling to ``max_order`` and records the temperate radius along the way."""
    if max_order < 4:
        raise ValueError("max_order must be at least 4 for a meaningful fit.")
    config = ShuffleConfig(probability=probability, seed=seed, max_order=max_order, verbose=False)
    engine = ShuffleEngine(config)
    checkpoints = set(np.unique(np.linspace(max(2, max_order // samples), max_order, samples).astype(int)))

    orders = []
    radii = []
    for n in range(1, max_order + 1):
        engine.step()
        if n in checkpoints:
            orders.append(n)
            radii.append(temperate_radius(engine.orientation_grid()))
    return engine, np.array(orders, dtype=np.float64), np.array(radii, dtype=np.float64)


def fit_arctic_circle(orders: np.ndarray, radii: np.ndarray) -> tuple[float, float, float]:
    """
    Linear fit r(n) = slope * n + intercept.

    Returns:
        Tuple of (slope, intercept, r_squared)
    """
    if len(orders) < 3:
        raise ValueError("Too few checkpoints for a fit; increase --samples.")
    slope, intercept, r_value, p_value, std_err = linregress(orders, radii)
    return slope, intercept, r_value**2


def analyse(
    max_order: int,
    samples: int = 20,
    probability: float = 0.5,
    seed: int | None = None,
    output_path: str | Path | None = None,
    show_plot: bool = False,
) -> tuple[float, float, float]:
    print(f"Growing order-{max_order} tiling (p={probability}, seed={seed})...")
    engine, orders, radii = sweep(max_order, samples, probability, seed)

    slope, intercept, r_squared = fit_arctic_circle(orders, radii)

    print("\n" + "=" * 60)
    print("ARCTIC CIRCLE")
    print("=" * 60)
    for n, r in zip(orders, radii):
        print(f"  n={int(n):5d}  r={r:9.3f}  r/n={r / n:.4f}")
    print(f"Slope:      {slope:.5f} (expected {EXPECTED_SLOPE:.5f} for p=0.5)")
    print(f"Intercept:  {intercept:.3f}")
    print(f"R² (Linearity): {r_squared:.6f}")
    counts = engine.counts()
    print("Final orientation counts: " + ", ".join(f"{o.name.lower()}={c}" for o, c in counts.items()))
    print("=" * 60)

    if output_path is None and not show_plot:
        return slope, intercept, r_squared

    fig, (ax1, ax2) = plt.subplots(1, 2, figsize=(14, 6))

    grid = engine.orientation_grid().astype(np.float64)
    grid[grid < 0] = np.nan
    ax1.imshow(grid, interpolation="nearest", cmap="viridis")
    ax1.imshow(np.where(frozen_mask(engine.orientation_grid()), np.nan, 1.0),
               interpolation="nearest", cmap="Greys", alpha=0.35, vmin=0.0, vmax=1.0)
    ax1.set_title(f"Order {engine.order}: orientations, temperate region shaded")
    ax1.axis("off")

    ax2.scatter(orders, radii, color="black", s=12, label="Simulation Data")
    ax2.plot(orders, slope * orders + intercept, color="red", linestyle="--", linewidth=2,
             label=f"Fit: slope = {slope:.3f}")
    ax2.plot(orders, EXPECTED_SLOPE * orders, color="blue", linestyle=":", linewidth=1.5,
             label=r"$n/\sqrt{2}$")
    ax2.set_xlabel(r"order $n$")
    ax2.set_ylabel(r"$\sqrt{A_{temperate}/\pi}$")
    ax2.set_title(f"Arctic circle radius (R² = {r_squared:.4f})")
    ax2.legend()
    ax2.grid(True, linestyle="--", alpha=0.4)

    plt.tight_layout()

    if output_path is not None:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        plt.savefig(output_path, dpi=150, bbox_inches="tight")
        print(f"\nFigure saved to: {output_path}")

    if show_plot:
        plt.show()
    else:
        plt.close()
    return slope, intercept, r_squared


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Measure the arctic circle of random Aztec diamond tilings."
    )
    parser.add_argument("--order", type=int, default=128, help="Largest order to grow (default: 128)")
    parser.add_argument("--samples", type=int, default=20, help="Number of checkpoints (default: 20)")
    parser.add_argument("--probability", type=float, default=0.5, help="Fill probability (default: 0.5)")
    parser.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")
    parser.add_argument("--out", type=str, default=None, help="Output path for the analysis figure")
    parser.add_argument("--show", action="store_true", help="Display plot interactively")
    args = parser.parse_args()

    analyse(
        args.order,
        samples=args.samples,
        probability=args.probability,
        seed=args.seed,
        output_path=args.out,
        show_plot=args.show,
    )


if __name__ == "__main__":
    main()
