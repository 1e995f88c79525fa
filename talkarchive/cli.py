#!/usr/bin/env python3
"""
Command-line entry point for ingestion and backfills.

Usage:
    python -m talkarchive.cli ingest --channel UCxxxx [--limit 10] [--concurrency 2]
    python -m talkarchive.cli ingest --video dQw4w9WgXcQ [--skip-llm] [--dry-run]
    python -m talkarchive.cli enrich [--limit 10] [--video ID] [--force]
    python -m talkarchive.cli embed [--limit 50] [--video ID] [--force]

Runs in-process against DATABASE_URL; no Celery worker needed.
"""

import argparse
import asyncio
import sys
from typing import Optional, Sequence

from talkarchive.core.config import settings
from talkarchive.core.logging import get_logger, setup_logging
from talkarchive.db.session import init_db
from talkarchive.services.container import Services, build_services
from talkarchive.services.ingestion import IngestOptions, VideoOutcome
from talkarchive.services.youtube import extract_video_id, validate_video_id

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="talkarchive",
        description="Ingest YouTube transcripts and maintain the search index",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    ingest = commands.add_parser("ingest", help="Ingest a channel or a single video")
    target = ingest.add_mutually_exclusive_group(required=True)
    target.add_argument("--channel", help="YouTube channel ID (UC...)")
    target.add_argument("--video", help="YouTube video ID or URL")
    ingest.add_argument("--limit", type=int, default=None, help="Maximum videos to process")
    ingest.add_argument("--skip-llm", action="store_true", help="Skip cleaning, summary and tags")
    ingest.add_argument("--skip-embeddings", action="store_true", help="Do not chunk or embed")
    ingest.add_argument("--dry-run", action="store_true", help="List what would be ingested, write nothing")
    ingest.add_argument(
        "--concurrency",
        type=int,
        default=settings.INGEST_CONCURRENCY,
        help="Videos processed at once (channel ingest only)",
    )

    enrich = commands.add_parser("enrich", help="Enrich completed transcripts missing a summary")
    enrich.add_argument("--limit", type=int, default=10)
    enrich.add_argument("--video", help="Only this YouTube video ID")
    enrich.add_argument("--force", action="store_true", help="Re-enrich even if already summarized")

    embed = commands.add_parser("embed", help="Embed completed videos that have no chunks")
    embed.add_argument("--limit", type=int, default=50)
    embed.add_argument("--video", help="Only this YouTube video ID")
    embed.add_argument("--force", action="store_true", help="Delete and rebuild existing chunks")

    return parser


async def run_ingest(services: Services, args: argparse.Namespace) -> int:
    options = IngestOptions(
        skip_enrichment=args.skip_llm,
        skip_embeddings=args.skip_embeddings,
        dry_run=args.dry_run,
    )
    orchestrator = services.orchestrator

    if args.video:
        video_id = extract_video_id(args.video)
        if not validate_video_id(video_id):
            print(f"❌ Not a valid YouTube video ID: {args.video}")
            return 2
        result = await orchestrator.ingest_video(video_id, options)
        print(f"{result.outcome.value:>10}  {result.youtube_id}  {result.title or ''}")
        if result.error:
            print(f"            {result.error}")
        return 1 if result.outcome == VideoOutcome.FAILED else 0

    result = await orchestrator.ingest_channel(
        args.channel,
        limit=args.limit,
        concurrency=args.concurrency,
        options=options,
    )
    for video in result.results:
        print(f"{video.outcome.value:>10}  {video.youtube_id}  {video.title or ''}")
    summary = result.summary()
    print(
        f"\n✅ {summary['discovered']} discovered since {summary['since']}: "
        f"{summary['completed']} completed, {summary['skipped']} skipped, {summary['failed']} failed"
    )
    return 1 if result.failed else 0


async def run_enrich(services: Services, args: argparse.Namespace) -> int:
    results = await services.orchestrator.enrich_pending(
        limit=args.limit, youtube_id=args.video, force=args.force
    )
    for result in results:
        degraded = f"  (degraded: {', '.join(result.degraded_steps)})" if result.degraded_steps else ""
        print(f"  {result.youtube_id}  {len(result.tags)} tags{degraded}")
    print(f"\n✅ Enriched {len(results)} transcripts")
    return 0


async def run_embed(services: Services, args: argparse.Namespace) -> int:
    results = await services.orchestrator.embed_pending(
        limit=args.limit, youtube_id=args.video, force=args.force
    )
    for youtube_id, outcome in results:
        print(f"  {youtube_id}  {outcome.status.value}  {outcome.chunk_count} chunks")
    failed = sum(1 for _, outcome in results if not outcome.ok)
    print(f"\n✅ Processed {len(results)} videos, {failed} failed")
    return 1 if failed else 0


COMMANDS = {
    "ingest": run_ingest,
    "enrich": run_enrich,
    "embed": run_embed,
}


async def main_async(args: argparse.Namespace) -> int:
    needs_llm = args.command == "enrich" or (args.command == "ingest" and not args.skip_llm)
    needs_embedder = args.command != "ingest" or not (args.skip_embeddings or args.dry_run)

    services = await build_services(load_embedder=needs_embedder, enable_llm=needs_llm)
    try:
        await init_db(services.engine)
        return await COMMANDS[args.command](services, args)
    finally:
        await services.close()


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging()
    try:
        return asyncio.run(main_async(args))
    except (ValueError, RuntimeError) as e:
        logger.error("cli_failed", command=args.command, error=str(e))
        print(f"❌ {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
