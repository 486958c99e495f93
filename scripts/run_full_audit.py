#!/usr/bin/env python
"""Run a batch audit against the audit service from the command line.

Resolves the targets, audits them chunk by chunk with a progress line per
chunk, and prints the run summary. Ctrl+C stops after the chunk in flight.

Usage:
    python scripts/run_full_audit.py https://example.com --mode site
    python scripts/run_full_audit.py https://example.com --mode page --page /pricing
    python scripts/run_full_audit.py https://example.com --mode group \
        --keyword "crm software" --keyword "sales crm" --types seo content
"""

import argparse
import asyncio
import json
import signal
import sys

# Add project root to path
sys.path.insert(0, ".")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run a batch page audit")
    parser.add_argument("site_url", help="Site to audit, e.g. https://example.com")
    parser.add_argument(
        "--mode",
        choices=["page", "keyword", "group", "site"],
        default="site",
        help="How to select pages (default: site)",
    )
    parser.add_argument("--page", help="Page URL or path for --mode page")
    parser.add_argument(
        "--keyword",
        action="append",
        default=[],
        help="Keyword for --mode keyword; repeat for --mode group",
    )
    parser.add_argument(
        "--types", nargs="+", help="Audit types (default: AUDIT_TYPES setting, all types)"
    )
    parser.add_argument("--chunk-size", type=int, help="Pages audited concurrently")
    parser.add_argument(
        "--batch-endpoint",
        action="store_true",
        help="Use per-type batch calls instead of the multi-type endpoint",
    )
    parser.add_argument(
        "--skip-audited",
        action="store_true",
        help="Load stored results first and skip pages that already have them",
    )
    parser.add_argument("--output", help="Write the summary as JSON to this file")
    return parser


async def run_full_audit(args: argparse.Namespace) -> dict:
    """Run the audit described by the parsed arguments and return its summary."""
    from api.config import get_settings
    from api.logging import setup_logging
    from worker.audit.client import AuditServiceClient
    from worker.audit.coordinator import AuditCoordinator
    from worker.audit.models import (
        TargetMode,
        TargetSelection,
        parse_audit_types,
    )
    from worker.audit.scheduler import BatchScheduler

    setup_logging()
    settings = get_settings()
    site_url = args.site_url.rstrip("/")
    audit_types = parse_audit_types(args.types or settings.audit_types)

    selection = TargetSelection(
        site_url=site_url,
        mode=TargetMode(args.mode),
        page_url=args.page,
        keyword=args.keyword[0] if args.keyword else None,
        keywords=tuple(args.keyword),
    )

    async with AuditServiceClient(settings=settings) as client:
        scheduler = BatchScheduler(
            client,
            chunk_size=args.chunk_size,
            use_multi_endpoint=not args.batch_endpoint,
            settings=settings,
        )
        coordinator = AuditCoordinator(site_url, client, scheduler=scheduler, settings=settings)

        if args.skip_audited:
            loaded = await coordinator.load_history(audit_types)
            print(f"Loaded {loaded} stored results")

        def on_result(result) -> None:
            status = f"ERROR {result.error}" if result.failed else f"{result.score:>3}"
            print(f"  [{result.audit_type.label:<10}] {status}  {result.page_url}")

        coordinator.on_result(on_result)

        loop = asyncio.get_running_loop()
        loop.add_signal_handler(signal.SIGINT, coordinator.stop)

        print(f"\n{'='*70}")
        print(f"AUDIT: {site_url} ({selection.mode.value})")
        print(f"Types: {', '.join(t.label for t in audit_types)}")
        print(f"{'='*70}\n")

        await coordinator.start(selection, audit_types, skip_audited=args.skip_audited)
        remaining = len(coordinator.state.remaining)
        print(f"Targets: {len(coordinator.targets())} pages, {remaining} to audit")
        await coordinator.wait()
        loop.remove_signal_handler(signal.SIGINT)

        progress = coordinator.progress()
        print(f"\nDone: {progress['done']}/{progress['total']} pages ({progress['percent']}%)")
        if progress["resumable"]:
            print("Run was stopped before every page was audited.")

        if not len(coordinator.log):
            return {"progress": progress, "summary": None}

        summary = coordinator.summary(0)
        print(f"Overall score: {summary.overall_score}")
        for audit_type, score in summary.type_scores.items():
            print(f"  {audit_type.label:<12} {score}")
        print("Buckets: " + ", ".join(f"{b.value}={c}" for b, c in summary.buckets.items()))
        if summary.top_issues:
            print("Top issues:")
            for issue in summary.top_issues:
                print(f"  {issue.count:>4}  {issue.category}")

        return {"progress": progress, "summary": summary.to_dict()}


def main() -> None:
    args = build_parser().parse_args()
    if not args.site_url.startswith(("http://", "https://")):
        args.site_url = f"https://{args.site_url}"

    from api.exceptions import SeautoError

    try:
        results = asyncio.run(run_full_audit(args))
    except SeautoError as e:
        print(f"Error: {e.message}")
        sys.exit(1)
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(2)

    if args.output:
        with open(args.output, "w") as f:
            json.dump(results, f, indent=2)
        print(f"Results saved to: {args.output}")


if __name__ == "__main__":
    main()
