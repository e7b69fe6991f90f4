from __future__ import annotations

import time

from ..cancel import CancelToken
from ..errors import AudioDedupError
from ..fingerprinting import FingerprintService
from ..indexer import LibraryIndexer
from ..models import ScanStage
from ..service import DuplicateService
from .output import describe_group, print_json

POLL_SECONDS = 0.5


def run_index(indexer: LibraryIndexer, *, force: bool = False, json_output: bool = False) -> None:
    summary = indexer.index(force=force)
    if json_output:
        print_json(summary.to_record())
        return
    print(
        f"Scanned {summary.scanned} files: {summary.indexed} indexed, {summary.unchanged} unchanged, "
        f"{summary.failed} failed, {summary.removed} removed."
    )


def run_fingerprint(service: FingerprintService, *, json_output: bool = False) -> None:
    if not service.available():
        raise AudioDedupError(f"Fingerprint backend '{service.generator.name}' is not available")
    token = CancelToken()
    try:
        result = service.generate_missing(cancel=token)
    except KeyboardInterrupt:
        token.cancel()
        raise
    if json_output:
        print_json(result.to_record())
        return
    print(
        f"Fingerprinted {result.successful} of {result.total} files "
        f"({result.failed} failed, {result.skipped} skipped)."
    )
    for failure in result.failures[:20]:
        print(f"    failed: {failure.path}: {failure.reason}")


def run_scan(service: DuplicateService, *, json_output: bool = False, show_groups: bool = True) -> None:
    """Run one background scan and follow it until it finishes; Ctrl-C cancels it."""
    session_id = service.start_scan()
    try:
        while True:
            status = service.scan_status(session_id)
            if status is None or status.stage.terminal:
                break
            time.sleep(POLL_SECONDS)
    except KeyboardInterrupt:
        service.cancel_scan(session_id)
        print("\nCancelling scan...")
    status = service.sessions.wait(session_id) if service.sessions else None
    if status is None:
        raise AudioDedupError(f"Scan {session_id} is no longer tracked")
    if json_output:
        print_json(status.to_record())
        return
    print(
        f"Scan {status.stage.value}: {status.groups_found} groups from {status.total_files} files "
        f"({status.strategy or 'n/a'} strategy)"
    )
    if status.stage is ScanStage.ERROR:
        raise AudioDedupError(status.error or "scan failed")
    if status.stage is ScanStage.COMPLETED and show_groups:
        for group in service.get_groups():
            for line in describe_group(group):
                print(line)
