"""marketseg - Market Segmentation Research

Simple CLI for running a full segmentation analysis from a ProductInput JSON file.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from pydantic import ValidationError

from marketseg.agents.pipeline import SegmentationPipeline, classify_error
from marketseg.models.events import ProcessingStatus
from marketseg.models.schemas import ProductInput
from marketseg.services.cost_tracker import cost_tracker
from marketseg.services.status_store import StatusStore


class ConsoleStatusStore(StatusStore):
    """Status store that also prints every phase update."""

    def update(self, session_id: str, status: ProcessingStatus) -> None:
        super().update(session_id, status)
        print(f"[{status.progress:>3}%] {status.phase.value}: {status.message}")


async def run_segmentation(product_input: ProductInput, session_id: str) -> dict:
    pipeline = SegmentationPipeline(status_store=ConsoleStatusStore(), cost_tracker=cost_tracker)
    result = await pipeline.run(product_input, session_id=session_id)
    payload = result.to_payload()

    summary = cost_tracker.get_summary()
    print(f"\n[*] Analysis Complete!")
    print(f"   Segments: {len(payload['segments'])}")
    print(f"   Personas: {len(payload['personas'])}")
    print(f"   Claude: {summary.claude_operations} calls, ${summary.claude_cost:.4f}")
    print(f"   Serper: {summary.serper_search_count} searches, ${summary.serper_cost:.4f}")
    print(f"   Total cost: ${summary.total_cost:.4f}")
    for warning in payload.get("warnings", []):
        print(f"   [!] {warning}")
    return payload


def main():
    parser = argparse.ArgumentParser(description="marketseg market segmentation research")
    parser.add_argument("--input", "-i", required=True, help="Path to a ProductInput JSON file")
    parser.add_argument("--output", "-o", help="Write the SegmentationResult JSON here (default: stdout)")
    parser.add_argument("--session-id", "-s", default="cli", help="Status key for this run")

    args = parser.parse_args()

    try:
        product_input = ProductInput.model_validate_json(Path(args.input).read_text(encoding="utf-8"))
    except (OSError, ValidationError) as e:
        print(f"[!] Invalid input: {e}", file=sys.stderr)
        sys.exit(2)

    try:
        payload = asyncio.run(run_segmentation(product_input, args.session_id))
    except Exception as e:
        print(f"\n[!] Error: {classify_error(e)}", file=sys.stderr)
        sys.exit(1)

    text = json.dumps(payload, indent=2)
    if args.output:
        Path(args.output).write_text(text, encoding="utf-8")
        print(f"\nResult written to {args.output}")
    else:
        print(f"\n{'='*50}")
        print(text)


if __name__ == "__main__":
    main()
