from __future__ import annotations

from pathlib import Path
from typing import Collection

from ..service import DuplicateService
from .output import describe_file, print_json


def run_preview(service: DuplicateService, *, exclude_ids: Collection[int] = (), json_output: bool = False) -> None:
    decisions = service.preview_auto_resolution(exclude_ids)
    if json_output:
        print_json([decision.to_record() for decision in decisions])
        return
    if not decisions:
        print("No duplicates found to process.")
        return
    review = 0
    for decision in decisions:
        print(f"Group {decision.group.group_id}: {decision.reason}")
        if decision.needs_manual_review:
            review += 1
            for record in decision.group.files:
                print(f"    ?    {describe_file(record)}")
            continue
        if decision.file_to_keep is not None:
            print(f"    keep {describe_file(decision.file_to_keep)}")
        for record in decision.files_to_delete:
            similarity = decision.similarities.get(record.id)
            suffix = f" [{similarity:.1%}]" if similarity is not None else ""
            print(f"    del  {describe_file(record)}{suffix}")
    print(f"\n{len(decisions) - review} groups can be resolved automatically, {review} need review.")


def run_resolve(
    service: DuplicateService,
    *,
    exclude_ids: Collection[int] = (),
    assume_yes: bool = False,
    json_output: bool = False,
) -> None:
    if not assume_yes:
        answer = input("Delete lower-ranked duplicates from disk? [y/N]: ").strip().lower()
        if answer not in {"y", "yes"}:
            print("Aborted.")
            return
    outcome = service.execute_auto_resolution(exclude_ids)
    if json_output:
        print_json(outcome.to_record())
        return
    print(outcome.summary)
    for group in outcome.review_groups:
        print(f"    review: group {group.group_id} ({group.representative_title or '<untitled>'})")


def run_resolve_directory(
    service: DuplicateService,
    keep: Path,
    delete: Path,
    *,
    dry_run: bool = False,
    assume_yes: bool = False,
    json_output: bool = False,
) -> None:
    keep = keep.expanduser().resolve()
    delete = delete.expanduser().resolve()
    preview = service.preview_directory_resolution(keep, delete)
    if dry_run or not preview.files_to_delete:
        if json_output:
            print_json(
                {
                    "directory_to_keep": str(preview.directory_to_keep),
                    "directory_to_delete": str(preview.directory_to_delete),
                    "files_to_delete": [record.to_record() for record in preview.files_to_delete],
                    "files_to_keep": [record.to_record() for record in preview.files_to_keep],
                }
            )
            return
        print(f"{preview.total_files_to_delete} files would be deleted from {preview.directory_to_delete}")
        for record in preview.files_to_delete:
            print(f"    del  {describe_file(record)}")
        return
    if not assume_yes:
        answer = input(
            f"Delete {preview.total_files_to_delete} files from {preview.directory_to_delete}? [y/N]: "
        ).strip().lower()
        if answer not in {"y", "yes"}:
            print("Aborted.")
            return
    result = service.resolve_directory_conflict(keep, delete)
    if json_output:
        print_json(
            {
                "directory_kept": str(result.directory_kept),
                "directory_cleared": str(result.directory_cleared),
                "files_deleted": result.files_deleted,
                "files_attempted": result.files_attempted,
                "deleted_ids": result.deleted_ids,
            }
        )
        return
    print(f"Deleted {result.files_deleted} of {result.files_attempted} files from {result.directory_cleared}")
