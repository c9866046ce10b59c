#!/usr/bin/env python3
"""
Batch Tiling Runner

Generates many Aztec diamond tilings in parallel, one per seed, and writes
a snapshot (plus an optional PNG) for each alongside a manifest.
"""

import argparse
import json
import sys
import time
from concurrent.futures import ProcessPoolExecutor, as_completed
from pathlib import Path
from typing import Any, Dict, Optional

# Add package source to path
SRC = Path(__file__).resolve().parents[1]
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from aztec_sim import ShuffleConfig, ShuffleEngine, draw_image, utils


def run_single_tiling(
    steps: int,
    seed: int,
    probability: float,
    output_path: str,
    tile_size: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Run a single tiling and save it.

    This function is designed to be called in parallel by ProcessPoolExecutor.
    It must be at module level (not nested) for pickling.
    """
    config = ShuffleConfig(
        probability=probability, seed=seed, max_order=steps, verbose=False
    )
    engine = ShuffleEngine(config)
    engine.generate(steps)
    engine.check_invariants()

    utils.save_snapshot(output_path, engine)
    image_path = None
    if tile_size:
        image_path = str(Path(output_path).with_suffix(".png"))
        draw_image(engine, tile_size, output=image_path)

    counts = engine.counts()
    return {
        "output_path": output_path,
        "image_path": image_path,
        "seed": seed,
        "order": engine.order,
        "tiles": engine.tile_count,
        "counts": {o.name.lower(): n for o, n in counts.items()},
        "success": True,
    }


def main():
    parser = argparse.ArgumentParser(
        description="Generate a batch of Aztec diamond tilings",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--steps",
        type=int,
        required=True,
        help="Number of shuffling steps (diamond order) per tiling",
    )
    parser.add_argument(
        "--count",
        type=int,
        required=True,
        help="Number of tilings to generate",
    )
    parser.add_argument(
        "--jobs",
        type=int,
        default=1,
        help="Number of parallel processes (default: 1)",
    )
    parser.add_argument(
        "--probability",
        type=float,
        default=0.5,
        help="Probability of a horizontal pair per block (default: 0.5)",
    )
    parser.add_argument(
        "--tile-size",
        type=int,
        default=0,
        help="Also render a PNG per tiling with this many pixels per cell (default: off)",
    )
    parser.add_argument(
        "--name",
        type=str,
        default="batch",
        help="Batch name for output folder (default: 'batch')",
    )
    parser.add_argument(
        "--base-seed",
        type=int,
        default=42,
        help="Base seed (each tiling gets base_seed + index) (default: 42)",
    )

    args = parser.parse_args()

    # Calculate seed range
    first_seed = args.base_seed
    last_seed = args.base_seed + args.count - 1

    timestamp = utils.now_str()
    batch_dir = Path("results") / "batches" / f"aztec_n{args.steps}_S{first_seed}-{last_seed}_{timestamp}"
    batch_dir.mkdir(parents=True, exist_ok=True)

    manifest = {
        "steps": args.steps,
        "probability": args.probability,
        "count": args.count,
        "base_seed": args.base_seed,
        "jobs": args.jobs,
        "timestamp": timestamp,
        "batch_name": args.name,
    }

    manifest_path = batch_dir / "manifest.json"
    with open(manifest_path, "w") as f:
        json.dump(manifest, f, indent=2)

    print(f"Batch generation started:")
    print(f"  Order: {args.steps}")
    print(f"  Probability: {args.probability}")
    print(f"  Total tilings: {args.count}")
    print(f"  Parallel jobs: {args.jobs}")
    print(f"  Output directory: {batch_dir}")
    print(f"  Base seed: {args.base_seed}")
    print()

    tasks = []
    for i in range(args.count):
        seed = args.base_seed + i
        output_path = str(batch_dir / f"{seed}.npz")
        tasks.append((args.steps, seed, args.probability, output_path, args.tile_size))

    start_time = time.time()
    results = []
    failed = []

    with ProcessPoolExecutor(max_workers=args.jobs) as executor:
        future_to_task = {
            executor.submit(run_single_tiling, *task): task
            for task in tasks
        }

        completed = 0
        for future in as_completed(future_to_task):
            completed += 1
            task = future_to_task[future]
            try:
                result = future.result()
                results.append(result)
                print(
                    f"  [{completed}/{args.count}] Completed: seed={result['seed']}, "
                    f"tiles={result['tiles']}"
                )
            except Exception as e:
                failed.append({"task": task, "error": str(e)})
                print(f"  [{completed}/{args.count}] FAILED: seed={task[1]} - {e}")

    elapsed_time = time.time() - start_time

    manifest["results"] = {
        "total": args.count,
        "successful": len(results),
        "failed": len(failed),
        "elapsed_seconds": elapsed_time,
    }
    manifest["tilings"] = results
    if failed:
        manifest["failures"] = failed

    with open(manifest_path, "w") as f:
        json.dump(manifest, f, indent=2)

    print()
    print("=" * 60)
    print("Batch generation completed!")
    print(f"  Successful: {len(results)}/{args.count}")
    print(f"  Failed: {len(failed)}/{args.count}")
    print(f"  Total time: {elapsed_time:.2f} seconds")
    if len(results) > 0:
        print(f"  Average time per tiling: {elapsed_time/len(results):.2f} seconds")
    print(f"  Output directory: {batch_dir}")
    print(f"  Manifest: {manifest_path}")
    print("=" * 60)

    return 0 if len(failed) == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
