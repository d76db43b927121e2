#!/usr/bin/env python3
"""Triage a search query report exported as JSON or CSV and write a minus-word list."""

from __future__ import annotations

import argparse
import asyncio
import csv
import io
import json
import sys
from pathlib import Path

from querytriage.config import Settings
from querytriage.engine import AnalysisRequest, TriageEngine, parse_query_records
from querytriage.errors import TriageError
from querytriage.exporting import export_minus_words
from querytriage.llm import JSONChatClient

_CSV_COLUMNS = ("query", "impressions", "clicks", "cost", "conversions")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("input", type=Path, help="JSON array or CSV file with per-query metrics")
    parser.add_argument(
        "--business",
        type=str,
        default=None,
        help="Business description; enables AI classification",
    )
    parser.add_argument("--target-cpl", type=float, default=None, help="Target cost per lead")
    parser.add_argument(
        "--fallback",
        action="store_true",
        help="Use heuristic rules when the AI backend fails",
    )
    parser.add_argument(
        "--export",
        type=Path,
        default=None,
        help="Write suggested minus-words to this file (one -word per line)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the full response envelope as JSON instead of a summary",
    )
    return parser.parse_args()


def load_rows(path: Path) -> list[dict]:
    if path.suffix.lower() == ".csv":
        text = path.read_text(encoding="utf-8-sig")
        header = text.splitlines()[0] if text else ""
        delimiter = ";" if header.count(";") > header.count(",") else ","
        reader = csv.DictReader(io.StringIO(text), delimiter=delimiter)
        return [
            {key: row[key] for key in _CSV_COLUMNS if row.get(key) not in (None, "")}
            for row in reader
        ]
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("queries", [])
    return data


async def run(args: argparse.Namespace) -> int:
    settings = Settings.from_env()
    use_ai = bool(args.business)
    engine = TriageEngine(
        settings=settings,
        llm_client=JSONChatClient(settings) if use_ai else None,
        metrics=settings.build_metrics_recorder(),
    )
    records = parse_query_records(load_rows(args.input))
    request = AnalysisRequest(
        queries=records,
        business_description=args.business,
        target_cpl=args.target_cpl,
        use_ai=use_ai,
        fallback_to_heuristics=args.fallback,
    )
    response = await engine.analyze(request)
    result = response.result

    if args.json:
        print(json.dumps(response.to_payload(), ensure_ascii=False, indent=2))
    else:
        summary = result.summary
        print(f"Source: {result.source}")
        if response.warning:
            print(f"Warning: {response.warning}")
        print(
            f"Analyzed {result.total_queries} of {response.raw_queries_count} queries "
            f"({result.excluded_queries} excluded by cost ranking)"
        )
        print(
            f"Target: {len(result.target_queries)}  Trash: {len(result.trash_queries)}  "
            f"Review: {len(result.review_queries)}"
        )
        print(f"Total cost: {summary.total_cost:.2f}  Wasted: {summary.wasted_cost:.2f}")
        for suggestion in result.suggested_minus_words[:20]:
            print(
                f"  -{suggestion.word}: {suggestion.queries_affected} queries, "
                f"{suggestion.potential_savings:.2f} saved"
            )

    if args.export is not None:
        args.export.write_text(export_minus_words(result.suggested_minus_words), encoding="utf-8")
        print(f"Minus-words written to {args.export}", file=sys.stderr)
    return 0


def main() -> int:
    args = parse_args()
    try:
        return asyncio.run(run(args))
    except TriageError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
