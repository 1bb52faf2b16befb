"""
Main entrypoint: runs the sync service, or a one-shot operation.

Usage:
    python -m fieldsync                 # run service (auto sync + network monitor)
    python -m fieldsync status          # print status as JSON
    python -m fieldsync stats           # print queue statistics as JSON
    python -m fieldsync sync            # run one full pass
    python -m fieldsync delta --since 2026-01-01T00:00:00
    python -m fieldsync retry           # reset failed items and run a pass
    python -m fieldsync cleanup         # delete completed items
    uvicorn fieldsync.api.main:create_app --factory --port 8000  # status API
"""
import argparse
import asyncio
import dataclasses
import json
import logging
import sys

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)


def _print_json(obj) -> None:
    from fieldsync.models.sync import SyncResult

    if isinstance(obj, SyncResult):
        obj = _result_dict(obj)
    elif dataclasses.is_dataclass(obj):
        obj = dataclasses.asdict(obj)
    print(json.dumps(obj, indent=2, default=_json_default))


def _result_dict(result) -> dict:
    return {
        "success": result.success,
        "total_items": result.total_items,
        "success_count": result.success_count,
        "failed_count": result.failed_count,
        "duration_ms": result.duration_ms,
        "errors": [
            {"item": e.item.model_dump(), "error": e.error} for e in result.errors
        ],
    }


def _json_default(value):
    if hasattr(value, "model_dump"):
        return value.model_dump()
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


async def _run_service() -> None:
    from fieldsync.sync.service import build_service

    service = build_service()
    await service.initialize()
    logger.info("Sync service running. Press Ctrl+C to stop.")
    try:
        await asyncio.Event().wait()
    except (KeyboardInterrupt, SystemExit, asyncio.CancelledError):
        logger.info("Shutting down...")
    finally:
        await service.shutdown()
        logger.info("Goodbye.")


async def _run_once(args: argparse.Namespace) -> int:
    from fieldsync.sync.errors import SyncError
    from fieldsync.sync.service import build_service

    service = build_service()
    # One-shot commands: no timer, but a live connectivity reading
    service.monitor.start()
    try:
        if args.command == "status":
            _print_json(await service.get_status())
        elif args.command == "stats":
            _print_json(service.get_statistics())
        elif args.command == "cleanup":
            _print_json({"removed": service.cleanup_completed()})
        elif args.command == "sync":
            _print_json(await service.sync_all())
        elif args.command == "delta":
            _print_json(await service.sync_delta(args.since))
        elif args.command == "retry":
            _print_json(await service.retry_failed())
    except SyncError as exc:
        logger.error("%s", exc)
        return 1
    finally:
        await service.shutdown(max_wait=0)
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="fieldsync", description="Offline mutation queue sync")
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("run", help="Run the sync service (default)")
    sub.add_parser("status", help="Print service status")
    sub.add_parser("stats", help="Print queue statistics")
    sub.add_parser("sync", help="Run one full sync pass")
    delta = sub.add_parser("delta", help="Sync items created after a timestamp")
    delta.add_argument("--since", required=True, help="ISO-8601 timestamp")
    sub.add_parser("retry", help="Reset failed items and sync")
    sub.add_parser("cleanup", help="Delete completed items")
    args = parser.parse_args(argv)

    if args.command in (None, "run"):
        try:
            asyncio.run(_run_service())
        except KeyboardInterrupt:
            pass
        return 0
    return asyncio.run(_run_once(args))


if __name__ == "__main__":
    sys.exit(main())
