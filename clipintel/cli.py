import argparse
import asyncio
import dataclasses
import logging
import os
import sys
from typing import List, Optional

import pandas as pd

from clipintel.config import EngineConfig
from clipintel.engine import IntelligenceEngine, build_default_engine
from clipintel.errors import ClipIntelError, InvalidURL
from clipintel.models import AnalysisResult
from clipintel.sample_generation import generate_sample_data


def process_url_file(file_path: str, quiet: bool = False) -> List[str]:
    """
    Read URLs from a file, one per line.

    Args:
        file_path: Path to the file containing URLs
        quiet: If True, suppress informational messages

    Returns:
        List of URLs read from the file
    """
    try:
        with open(file_path, "r", encoding="utf-8", errors="ignore") as f:
            urls = [line.strip() for line in f if line.strip()]
    except FileNotFoundError:
        print(f"Error: File '{file_path}' not found.", file=sys.stderr)
        return []
    if not quiet:
        print(f"Loaded {len(urls)} URLs.")
    return urls


def read_from_stdin() -> List[str]:
    return [line.strip() for line in sys.stdin if line.strip()]


def format_result(result: AnalysisResult) -> List[str]:
    lines = [
        f"[{result.risk.level.value.upper()}:{result.risk.score:.2f}] {result.url}",
        f"    intent: {result.intent.intent.value} ({result.intent.confidence:.2f})",
    ]
    if result.performance is not None:
        perf = result.performance
        lines.append(
            f"    performance: {perf.performance_score:.2f}, "
            f"load {perf.estimated_load_time:.2f}s, "
            f"memory {perf.memory_impact:.1f}MB, "
            f"cache {perf.cache_hit_probability:.2f}"
        )
    if result.risk.mitigations:
        lines.append("    mitigations: " + ", ".join(sorted(result.risk.mitigations)))
    for suggestion in result.suggestions:
        lines.append(
            f"    - [{suggestion.priority.value}] {suggestion.description} "
            f"(+{suggestion.estimated_improvement:.0%})"
        )
    if result.degraded:
        lines.append("    degraded: " + ", ".join(result.degraded_sources))
    return lines


def train_from_file(engine: IntelligenceEngine, train_file: str, model_path: str) -> int:
    train_df = pd.read_csv(train_file)
    trained = engine.classifier.train(
        train_df["url"].astype(str).tolist(), train_df["intent"].astype(str).tolist()
    )
    engine.classifier.save_model(model_path)
    return trained


async def analyze_urls(engine: IntelligenceEngine, urls: List[str]) -> List[AnalysisResult]:
    await engine.initialize()
    results = []
    try:
        for url in urls:
            try:
                results.append(await engine.analyze(url))
            except InvalidURL as e:
                print(f"Skipping {e}", file=sys.stderr)
    finally:
        await engine.shutdown()
    return results


def main(argv: Optional[List[str]] = None) -> None:
    """
    Command-line interface for the URL intelligence engine.

    Parses command-line arguments and runs the matching engine operations.
    """
    parser = argparse.ArgumentParser(
        description="Adaptive intelligence for App Clip invocation URLs"
    )
    parser.add_argument("-f", "--file", help="File containing URLs (one per line)")
    parser.add_argument("-u", "--url", help="Single URL to analyze")
    parser.add_argument(
        "-m", "--model", default="models/intent_model.joblib", help="Path to model file"
    )
    parser.add_argument(
        "--intent-model",
        choices=["rules", "online"],
        default=None,
        help="Intent model to use when no saved model exists",
    )
    parser.add_argument(
        "--train-file", help="CSV file with url and intent columns for training"
    )
    parser.add_argument(
        "--generate-sample",
        action="store_true",
        help="Generate sample training data and exit",
    )
    parser.add_argument(
        "--sample-size", type=int, default=2000, help="Number of sample URLs"
    )
    parser.add_argument(
        "--sample-output",
        default="data/sample_training_data.csv",
        help="Output file for sample data (when using --generate-sample)",
    )
    parser.add_argument(
        "-q", "--quiet", action="store_true", help="Suppress progress messages"
    )
    parser.add_argument("-o", "--outfile", help="Save results as CSV to a file")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.WARNING if args.quiet else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.generate_sample:
        sample_file = generate_sample_data(args.sample_output, args.sample_size)
        print(
            f"Generated sample training data with {args.sample_size} URLs at: {sample_file}\n"
            "To train the model with this data, run:\n"
            f"clipintel --train-file {sample_file}"
        )
        return

    config = EngineConfig.from_env()
    overrides = {"model_path": args.model}
    if args.intent_model:
        overrides["intent_model"] = args.intent_model
    config = dataclasses.replace(config, **overrides)
    engine, _ = build_default_engine(config)

    try:
        if args.train_file:
            trained = train_from_file(engine, args.train_file, args.model)
            print(f"Model trained on {trained} samples and saved to {args.model}")
            return

        if args.file:
            urls = process_url_file(args.file, quiet=args.quiet)
        elif args.url:
            urls = [args.url]
        elif not sys.stdin.isatty():
            urls = read_from_stdin()
        else:
            urls = []

        if not urls:
            print("No URLs provided. Use -f, -u, or pipe URLs to stdin.")
            return

        results = asyncio.run(analyze_urls(engine, urls))

        if args.outfile:
            outfile_dir = os.path.dirname(args.outfile)
            if outfile_dir:
                os.makedirs(outfile_dir, exist_ok=True)
            # One row per analyzed URL
            df = pd.DataFrame.from_records([r.to_record() for r in results])
            df.to_csv(args.outfile, index=False)
            if not args.quiet:
                print(f"Results saved to {args.outfile}")
        else:
            for result in results:
                for line in format_result(result):
                    print(line)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except ClipIntelError as e:
        print(f"An error occurred: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nProcess interrupted by user. Exiting.")
        sys.exit(0)


if __name__ == "__main__":
    main()
