"""Console utility to inspect and drain the pending sync queue."""
from __future__ import annotations

import argparse
import logging
from datetime import timedelta
from pathlib import Path
from typing import List, Optional

from core.settings import SYNC
from datetime_utils import utc_now
from services.patients_api import PatientsApi
from services.pending_ops_queue import PendingOpsQueue
from services.sync_service import SyncService
from storage.config import resolve_base_url, resolve_token
from storage.db import init_db


def _build_service(queue: PendingOpsQueue, config_path: Optional[Path]) -> SyncService:
    api = PatientsApi(resolve_base_url(config_path), token_provider=lambda: resolve_token(config_path))
    return SyncService(api, queue=queue, config_path=config_path)


def show_status(service: SyncService) -> int:
    status = service.status()
    last_sync = status.get("lastSyncAt")
    print(f"Pending operations: {status['queueSize']}")
    print(f"Last sync: {last_sync.isoformat() if last_sync else 'never'}")
    if status.get("lastError"):
        print(f"Last error: {status['lastError']}")
    return 0


def sync_once(service: SyncService) -> int:
    result = service.run()
    print(f"Synced {result.synced}, failed {result.failed}, pending {result.pending}")
    for op_id, error in result.errors.items():
        print(f"  #{op_id}: {error}")
    return 0 if result.succeeded else 1


def purge(
    queue: PendingOpsQueue,
    *,
    max_attempts: Optional[int] = None,
    older_than_days: Optional[int] = None,
) -> int:
    """Drop entries that keep failing; never called by sync runs."""
    older_than = utc_now() - timedelta(days=older_than_days) if older_than_days is not None else None
    removed = queue.purge(max_attempts=max_attempts, older_than=older_than)
    logging.info("Purged %d pending operation(s)", removed)
    print(f"Purged {removed} pending operation(s).")
    return 0


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__ or "")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output")
    parser.add_argument("--config", type=Path, default=None, help="Path to config.json")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("status", help="Show queue depth and the last sync outcome")
    sub.add_parser("sync", help="Replay every pending operation once")

    purge_parser = sub.add_parser("purge", help="Remove stale pending operations")
    purge_parser.add_argument(
        "--max-attempts",
        type=int,
        default=SYNC.max_attempts,
        help="Remove entries with at least this many failed attempts",
    )
    purge_parser.add_argument(
        "--older-than-days",
        type=int,
        default=None,
        help=f"Remove entries queued more than N days ago (suggested: {SYNC.purge_older_than_days})",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    _setup_logging(args.verbose)
    init_db()

    queue = PendingOpsQueue()
    if args.command == "purge":
        if args.max_attempts is None and args.older_than_days is None:
            print("Nothing to purge: pass --max-attempts and/or --older-than-days.")
            return 2
        return purge(queue, max_attempts=args.max_attempts, older_than_days=args.older_than_days)

    service = _build_service(queue, args.config)
    if args.command == "status":
        return show_status(service)
    return sync_once(service)


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
