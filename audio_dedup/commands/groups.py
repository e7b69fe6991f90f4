from __future__ import annotations

from typing import Optional

from ..service import DuplicateService
from .output import describe_file, describe_group, print_json


def run_groups(service: DuplicateService, *, group_id: Optional[int] = None, json_output: bool = False) -> None:
    if group_id is not None:
        group = service.get_group(group_id)
        if group is None:
            raise SystemExit(f"Duplicate group {group_id} not found")
        groups = [group]
    else:
        groups = service.get_groups()
    if json_output:
        print_json([group.to_record() for group in groups])
        return
    if not groups:
        print("No duplicate groups found.")
        return
    print(f"Strategy: {service.strategy().value}")
    for group in groups:
        for line in describe_group(group):
            print(line)


def run_compare(service: DuplicateService, first_id: int, second_id: int, *, json_output: bool = False) -> None:
    comparison = service.compare_files(first_id, second_id)
    if comparison is None:
        raise SystemExit(f"File {first_id} or {second_id} not found")
    if json_output:
        print_json(comparison.to_record())
        return
    print(describe_file(comparison.file_a))
    print(describe_file(comparison.file_b))
    print(comparison.metadata_explanation)
    if comparison.fingerprint_explanation:
        print(comparison.fingerprint_explanation)


def run_similar(
    service: DuplicateService,
    file_id: int,
    *,
    threshold: Optional[float] = None,
    json_output: bool = False,
) -> None:
    if service.repository.get_file_by_id(file_id) is None:
        raise SystemExit(f"File {file_id} not found")
    matches = service.find_similar(file_id, threshold)
    if json_output:
        print_json(
            [{"file": item.record.to_record(), "similarity": item.similarity} for item in matches]
        )
        return
    if not matches:
        print("No acoustically similar files found.")
        return
    for item in matches:
        print(f"{item.similarity:6.1%}  {describe_file(item.record)}")


def run_conflicts(service: DuplicateService, *, limit: int = 50, json_output: bool = False) -> None:
    conflicts = service.directory_conflicts()
    if limit > 0:
        conflicts = conflicts[:limit]
    if json_output:
        print_json([conflict.to_record() for conflict in conflicts])
        return
    if not conflicts:
        print("No directory conflicts found.")
        return
    for conflict in conflicts:
        print(
            f"{conflict.total_pairs:4d} pairs  {conflict.directory_a} ({conflict.files_in_a})"
            f"  <->  {conflict.directory_b} ({conflict.files_in_b})"
        )
