import argparse
import datetime
import logging
import os
import sys

from abcscribe.benchmarks.ladder.runner import run_ladder
from abcscribe.pipeline.config import DEFAULT_CONFIG, load_config


def main(argv=None):
    parser = argparse.ArgumentParser(description="Run the ladder benchmark (L1-L4) through the ABC pipeline")
    parser.add_argument("--level", action="append", help="Run specific level (e.g., L1_MONO); repeatable")
    parser.add_argument("--config", help="JSON file with config overrides")
    parser.add_argument("--output_dir", help="Directory for ABC files and summary (default results/ladder_<timestamp>)")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    config = load_config(args.config) if args.config else DEFAULT_CONFIG
    timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
    output_dir = args.output_dir or os.path.join("results", f"ladder_{timestamp}")

    results = run_ladder(config, output_dir=output_dir, level_ids=args.level)

    print("\n=== Ladder Benchmark Summary ===")
    print(f"| {'Example':<20} | {'Bars':<5} | {'Key':<4} | {'Recall':<7} | {'Errors'}")
    failed = 0
    for level_id, examples in results.items():
        for ex in examples:
            m = ex.get("metrics", {})
            recall = m.get("onset_recall")
            recall_str = f"{recall:.2f}" if isinstance(recall, float) else "-"
            errs = "; ".join(ex["errors"]) if ex["errors"] else "None"
            if ex["errors"]:
                failed += 1
            print(f"| {ex['id']:<20} | {m.get('bar_count', '-')!s:<5} | {m.get('key', '-'):<4} | {recall_str:<7} | {errs}")

    print(f"\nResults saved to {output_dir}")
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
