"""
Position-addressed patches between two task snapshots.

Patches are JSON-Patch style operations whose paths are array positions
(``/3`` or ``/3/progress``), not task ids. A consumer must apply them to a
collection ordered exactly like the one they were computed from; a backend
that reorders tasks between polls shows up as replace operations on the
affected positions.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from errors import ValidationError
from models import TASK_FIELDS, Task, TaskStatus

ADD = "add"
REPLACE = "replace"
REMOVE = "remove"

IndexedTasks = Dict[int, Task]


@dataclass(frozen=True)
class PatchOperation:
    op: str
    path: str
    value: Any = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"op": self.op, "path": self.path}
        if self.op != REMOVE:
            data["value"] = self.value.to_dict() if isinstance(self.value, Task) else self.value
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PatchOperation":
        op = data.get("op")
        if op not in (ADD, REPLACE, REMOVE):
            raise ValidationError(f"Unknown patch op: {op!r}")
        value = data.get("value")
        if op == ADD and isinstance(value, dict):
            value = Task.from_dict(value)
        return cls(op=op, path=str(data.get("path", "")), value=value)


@dataclass
class DiffResult:
    """Result of comparing two snapshots.

    Attributes:
        patches: Operations in the order they must be applied.
        has_changes: True iff ``patches`` is non-empty.
    """

    patches: List[PatchOperation] = field(default_factory=list)
    has_changes: bool = False


@dataclass
class Savings:
    full_size: int = 0
    patch_size: int = 0
    saved_percent: int = 0


def _parse_path(path: str) -> Tuple[int, Optional[str]]:
    parts = path.strip("/").split("/")
    if not parts or not parts[0].isdigit() or len(parts) > 2:
        raise ValidationError(f"Invalid patch path: {path!r}")
    return int(parts[0]), (parts[1] if len(parts) == 2 else None)


def compute_diff(previous: Sequence[Task], current: Sequence[Task], start_index: int = 0) -> DiffResult:
    """Compare two snapshots position by position.

    Shared positions yield one ``replace`` per differing field. Extra
    positions in ``current`` yield ``add`` with the whole task, extra
    positions in ``previous`` yield ``remove``. Every path index is offset by
    ``start_index``.
    """
    patches: List[PatchOperation] = []
    shared = min(len(previous), len(current))

    for i in range(shared):
        before, after = previous[i], current[i]
        if before == after:
            continue
        for name in TASK_FIELDS:
            new_value = getattr(after, name)
            if getattr(before, name) != new_value:
                patches.append(PatchOperation(REPLACE, f"/{start_index + i}/{name}", _plain(new_value)))

    for i in range(shared, len(current)):
        patches.append(PatchOperation(ADD, f"/{start_index + i}", current[i]))

    for i in range(shared, len(previous)):
        patches.append(PatchOperation(REMOVE, f"/{start_index + i}"))

    return DiffResult(patches=patches, has_changes=bool(patches))


def _plain(value: Any) -> Any:
    if isinstance(value, tuple):
        return list(value)
    if isinstance(value, TaskStatus):
        return value.value
    return value


def index_tasks(tasks: Union[Sequence[Task], Mapping[int, Task]]) -> IndexedTasks:
    if isinstance(tasks, Mapping):
        return dict(tasks)
    return dict(enumerate(tasks))


def apply_patches(
    baseline: Union[Sequence[Task], Mapping[int, Task]],
    patches: Sequence[Union[PatchOperation, Mapping[str, Any]]],
    start_index: int = 0,
) -> IndexedTasks:
    """Apply ``patches`` in order and return a new indexed collection.

    ``start_index`` is subtracted from every patch position, so patches for a
    window can be applied to a collection holding only that window.
    ``baseline`` is left untouched.
    """
    result = index_tasks(baseline)
    for patch in patches:
        if not isinstance(patch, PatchOperation):
            patch = PatchOperation.from_dict(patch)
        position, name = _parse_path(patch.path)
        index = position - start_index
        if index < 0:
            raise ValidationError(f"Patch {patch.path} precedes window start {start_index}")

        if patch.op == ADD:
            value = patch.value
            result[index] = value if isinstance(value, Task) else Task.from_dict(value)
        elif patch.op == REMOVE:
            result.pop(index, None)
        else:
            if name is None or name not in TASK_FIELDS:
                raise ValidationError(f"Invalid replace path: {patch.path}")
            if index not in result:
                raise ValidationError(f"Replace at missing position {position}")
            result[index] = replace(result[index], **{name: patch.value})
    return result


def to_list(indexed: Mapping[int, Task]) -> List[Task]:
    return [indexed[i] for i in sorted(indexed)]


def _serialized_size(items: Sequence[Any]) -> int:
    return len(json.dumps([item.to_dict() for item in items], separators=(",", ":")))


def estimate_savings(current: Sequence[Task], patches: Sequence[PatchOperation]) -> Savings:
    """Serialized size of the full snapshot against the patch list."""
    full_size = _serialized_size(current)
    patch_size = _serialized_size(patches)
    if not current or full_size == 0:
        return Savings(full_size=full_size, patch_size=patch_size, saved_percent=0)
    saved = math.floor((1 - patch_size / full_size) * 100 + 0.5)
    return Savings(full_size=full_size, patch_size=patch_size, saved_percent=saved)
