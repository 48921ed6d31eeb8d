#!/usr/bin/env python3
"""
CLI for the YouTube slop channel detector

Usage:
    python -m slop_detector.cli ingest --keyword "lofi hip hop" --target 50
    python -m slop_detector.cli ingest --seed UCxxxx UCyyyy --force-fresh
    python -m slop_detector.cli crawl
    python -m slop_detector.cli classify @SomeHandle [--ai-only] [--save]
    python -m slop_detector.cli slop-list --limit 20
    python -m slop_detector.cli stats --db-path /path/to/db.sqlite
"""
import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

from .config import ConfigError, Settings
from .db.database import Database, StoredChannel
from .discovery.ai_classifier import AIClassifier, RateLimiter
from .discovery.models import (
    ClassificationMode,
    ClassificationResult,
    IngestionRequest,
)
from .discovery.normalizer import normalize_channel, recent_window_start
from .discovery.pipeline import IngestionPipeline, classify_channel
from .discovery.risk_engine import assess_risk
from .discovery.topics import get_trending_seeds, pick_topics
from .discovery.youtube import DURATION_FILTERS, YouTubeClient

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def parse_args(argv: Optional[list] = None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="YouTube slop channel detector CLI"
    )
    parser.add_argument(
        "--db-path",
        help="Path to SQLite database (default: DATABASE_PATH or data.db)"
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output results as JSON"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # Ingest command
    ingest_parser = subparsers.add_parser(
        "ingest",
        help="Discover and classify channels from seeds, keywords or trending"
    )
    ingest_parser.add_argument(
        "--seed",
        nargs="+",
        default=[],
        metavar="CHANNEL_ID",
        help="Channel ids to classify first"
    )
    ingest_parser.add_argument(
        "--keyword", "-k",
        action="append",
        default=[],
        help="Search keyword (repeatable)"
    )
    ingest_parser.add_argument(
        "--category",
        help="Trending category id, used when no keywords are given"
    )
    ingest_parser.add_argument(
        "--min-subs",
        type=int,
        default=0,
        help="Skip channels with fewer subscribers (default: 0)"
    )
    ingest_parser.add_argument(
        "--min-videos",
        type=int,
        default=0,
        help="Skip channels with fewer videos (default: 0)"
    )
    ingest_parser.add_argument(
        "--target",
        type=int,
        default=100,
        help="Stop after this many classified channels (default: 100)"
    )
    ingest_parser.add_argument(
        "--force-fresh",
        action="store_true",
        help="Re-classify channels that are already stored"
    )
    ingest_parser.add_argument(
        "--duration",
        choices=DURATION_FILTERS,
        default="any",
        help="Video duration filter for keyword search (default: any)"
    )
    ingest_parser.add_argument(
        "--ai-only",
        action="store_true",
        help="Skip the rule engine and send every channel to the LLM"
    )

    # Crawl command
    crawl_parser = subparsers.add_parser(
        "crawl",
        help="Trend surfer: seed from trending charts plus random slop topics"
    )
    crawl_parser.add_argument(
        "--target",
        type=int,
        default=150,
        help="Stop after this many classified channels (default: 150)"
    )
    crawl_parser.add_argument(
        "--min-videos",
        type=int,
        default=5,
        help="Skip channels with fewer videos (default: 5)"
    )
    crawl_parser.add_argument(
        "--topics",
        type=int,
        default=3,
        help="Number of random slop topics to search (default: 3)"
    )

    # Classify command
    classify_parser = subparsers.add_parser(
        "classify",
        help="Classify a single channel by id, handle or search term"
    )
    classify_parser.add_argument(
        "query",
        help="Channel id (UC...), @handle or search term"
    )
    classify_parser.add_argument(
        "--ai-only",
        action="store_true",
        help="Skip the rule engine"
    )
    classify_parser.add_argument(
        "--save",
        action="store_true",
        help="Store the result in the database"
    )

    # Slop list command
    slop_parser = subparsers.add_parser(
        "slop-list",
        help="List stored SLOP channels, highest score first"
    )
    slop_parser.add_argument(
        "--limit",
        type=int,
        default=20,
        help="Number of channels to show (default: 20)"
    )

    # Stats command
    subparsers.add_parser(
        "stats",
        help="Show counts of stored channels by classification"
    )

    return parser.parse_args(argv)


def _mode(args) -> ClassificationMode:
    if getattr(args, "ai_only", False):
        return ClassificationMode.AI_ONLY
    return ClassificationMode.RULES_THEN_AI


def _youtube_client(settings: Settings) -> YouTubeClient:
    return YouTubeClient(
        settings.require_youtube_key(),
        base_url=settings.YOUTUBE_API_BASE,
        region_code=settings.YOUTUBE_REGION_CODE,
        timeout=settings.HTTP_TIMEOUT,
    )


def _ai_classifier(settings: Settings, limiter: RateLimiter) -> AIClassifier:
    return AIClassifier(
        limiter,
        model=settings.LLM_MODEL,
        host=settings.OLLAMA_HOST,
        timeout=settings.LLM_TIMEOUT,
    )


def _result_to_dict(r: ClassificationResult) -> dict:
    return {
        "channel_id": r.channel_id,
        "title": r.title,
        "classification": r.classification.value,
        "confidence": r.confidence,
        "slop_score": r.slop_score,
        "slop_type": r.slop_type.value if r.slop_type else None,
        "method": r.method.value,
        "reasons": list(r.reasons),
        "subscribers": r.metrics.subscriber_count,
        "videos": r.metrics.video_count,
        "recent_velocity": round(r.metrics.recent_velocity, 2),
        "age_in_days": r.metrics.age_in_days,
    }


def _stored_to_dict(ch: StoredChannel) -> dict:
    return {
        "channel_id": ch.channel_id,
        "title": ch.title,
        "slop_score": ch.slop_score,
        "confidence": ch.confidence,
        "slop_type": ch.slop_type,
        "method": ch.method,
        "subscribers": ch.subscriber_count,
        "videos": ch.video_count,
        "updated_at": ch.updated_at.isoformat() if ch.updated_at else None,
    }


async def _run_ingestion(
    db: Database,
    settings: Settings,
    limiter: RateLimiter,
    request: IngestionRequest,
    youtube: YouTubeClient,
) -> dict:
    pipeline = IngestionPipeline(
        db,
        youtube,
        _ai_classifier(settings, limiter),
        max_runtime_seconds=settings.MAX_RUNTIME_SECONDS,
        batch_size=settings.BATCH_SIZE,
        recent_video_sample=settings.RECENT_VIDEO_SAMPLE,
    )
    report = await pipeline.run(request)
    return {
        "summary": report.summary.to_dict(),
        "results": [_result_to_dict(r) for r in report.results],
    }


async def cmd_ingest(db: Database, args, settings: Settings, limiter: RateLimiter) -> dict:
    """Execute the ingest command."""
    request = IngestionRequest(
        seed_channel_ids=args.seed,
        keywords=args.keyword,
        min_subscribers=args.min_subs,
        min_videos=args.min_videos,
        target_count=args.target,
        force_fresh=args.force_fresh,
        duration=args.duration,
        mode=_mode(args),
        trending_category=args.category,
    )
    async with _youtube_client(settings) as youtube:
        result = await _run_ingestion(db, settings, limiter, request, youtube)
    return {"command": "ingest", **result}


async def cmd_crawl(db: Database, args, settings: Settings, limiter: RateLimiter) -> dict:
    """Execute the crawl command: trending seeds plus random slop topics."""
    topics = pick_topics(args.topics)
    logger.info("Trend surfer topics: %s", ", ".join(topics))

    async with _youtube_client(settings) as youtube:
        seeds = await get_trending_seeds(youtube)
        request = IngestionRequest(
            seed_channel_ids=seeds,
            keywords=topics,
            min_videos=args.min_videos,
            target_count=args.target,
        )
        result = await _run_ingestion(db, settings, limiter, request, youtube)

    return {
        "command": "crawl",
        "topics": topics,
        "trending_seeds": len(seeds),
        **result,
    }


async def cmd_classify(db: Database, args, settings: Settings, limiter: RateLimiter) -> dict:
    """Execute the classify command for one channel."""
    result = {"command": "classify", "query": args.query, "found": False}

    async with _youtube_client(settings) as youtube:
        if args.query.startswith("UC"):
            channel_id = args.query
        else:
            channel_id = await youtube.resolve_channel(args.query)
            if not channel_id:
                return result

        channels = await youtube.fetch_channel_metadata([channel_id])
        if not channels:
            return result
        channel = channels[0]

        recent = await youtube.fetch_recent_videos(
            channel.uploads_playlist_id,
            settings.RECENT_VIDEO_SAMPLE,
            published_after=recent_window_start(),
        )

    normalized = normalize_channel(channel, recent)
    risk = assess_risk(normalized)
    classification = await classify_channel(
        normalized, _ai_classifier(settings, limiter), _mode(args)
    )

    if args.save:
        db.ensure_channel_tables()
        db.upsert_classification(classification)

    result.update({
        "found": True,
        "saved": args.save,
        "risk": {
            "score": risk.score,
            "tier": risk.tier.value,
            "reasons": list(risk.reasons),
        },
        "result": _result_to_dict(classification),
        "recent_video_titles": list(classification.recent_video_titles[:10]),
    })
    return result


def cmd_slop_list(db: Database, args) -> dict:
    """Execute the slop-list command."""
    db.ensure_channel_tables()
    channels = db.get_slop_channels(limit=args.limit)
    return {
        "command": "slop-list",
        "count": len(channels),
        "channels": [_stored_to_dict(ch) for ch in channels],
    }


def cmd_stats(db: Database, args) -> dict:
    """Execute the stats command."""
    db.ensure_channel_tables()
    summary = db.get_classification_summary()
    return {
        "command": "stats",
        "total": summary["total"],
        "by_classification": {
            "SLOP": summary["SLOP"],
            "SUSPICIOUS": summary["SUSPICIOUS"],
            "OKAY": summary["OKAY"],
        },
        "by_method": summary["by_method"],
    }


def _print_run(result: dict) -> None:
    s = result["summary"]
    print(f"Stop reason: {s['stop_reason']}")
    print(f"Total processed: {s['total']}")
    print(f"  SLOP:       {s['slop']}")
    print(f"  SUSPICIOUS: {s['suspicious']}")
    print(f"  OKAY:       {s['okay']}")
    print("\nSkipped:")
    for reason, count in s["skipped"].items():
        print(f"  {reason}: {count}")
    slop = [r for r in result["results"] if r["classification"] == "SLOP"]
    if slop:
        print("\nSLOP channels:")
        for r in slop:
            print(f"  [{r['slop_score']:>3}] {r['title'][:40]:<40} {r['channel_id']} ({r['method']})")


def render(result: dict) -> None:
    """Print a plain-text rendering of a command result."""
    command = result["command"]
    print(f"\n{'=' * 50}")
    print(f"Command: {command}")
    print(f"{'=' * 50}")

    if command == "ingest":
        _print_run(result)

    elif command == "crawl":
        print(f"Topics: {', '.join(result['topics'])}")
        print(f"Trending seeds: {result['trending_seeds']}")
        _print_run(result)

    elif command == "classify":
        if not result["found"]:
            print(f"Channel not found: {result['query']}")
        else:
            r = result["result"]
            risk = result["risk"]
            print(f"Channel: {r['title']} ({r['channel_id']})")
            print(f"  Subscribers: {r['subscribers']:,} | Videos: {r['videos']:,}")
            print(f"  Age: {r['age_in_days']} days | Recent velocity: {r['recent_velocity']}/day")
            print(f"\nRisk score: {risk['score']} ({risk['tier']})")
            for reason in risk["reasons"]:
                print(f"  - {reason}")
            print(f"\nVerdict: {r['classification']} via {r['method']}")
            print(f"  Confidence: {r['confidence']} | Slop score: {r['slop_score']}")
            if r["slop_type"]:
                print(f"  Type: {r['slop_type']}")
            for reason in r["reasons"]:
                print(f"  - {reason}")
            if result["saved"]:
                print("\nSaved to database.")

    elif command == "slop-list":
        print(f"SLOP channels: {result['count']}")
        if result["channels"]:
            print("\n  SCORE | TITLE                          | SUBS       | TYPE")
            print("  " + "-" * 65)
            for ch in result["channels"]:
                print(f"  {ch['slop_score']:>5} | {ch['title'][:30]:<30} | "
                      f"{ch['subscribers']:>10,} | {ch['slop_type'] or '-'}")

    elif command == "stats":
        print(f"Total classified: {result['total']}")
        print("\nBy classification:")
        for label, count in result["by_classification"].items():
            print(f"  {label}: {count}")
        print("\nBy method:")
        for method, count in result["by_method"].items():
            print(f"  {method}: {count}")

    print(f"{'=' * 50}\n")


async def main(argv: Optional[list] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        settings = Settings()
        logging.getLogger().setLevel(settings.LOG_LEVEL)
        # One limiter per process, shared by every AI call
        limiter = RateLimiter(settings.LLM_MIN_INTERVAL)

        with Database(args.db_path or settings.DATABASE_PATH) as db:
            if args.command == "ingest":
                result = await cmd_ingest(db, args, settings, limiter)
            elif args.command == "crawl":
                result = await cmd_crawl(db, args, settings, limiter)
            elif args.command == "classify":
                result = await cmd_classify(db, args, settings, limiter)
            elif args.command == "slop-list":
                result = cmd_slop_list(db, args)
            elif args.command == "stats":
                result = cmd_stats(db, args)
            else:
                logger.error(f"Unknown command: {args.command}")
                return 1
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 2

    # Output results
    if args.json:
        print(json.dumps(result, indent=2))
    else:
        render(result)
    return 0


def run() -> None:
    """Console script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
