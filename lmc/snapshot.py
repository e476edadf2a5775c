from __future__ import annotations

import json
from pathlib import Path
from typing import Sequence

from lmc.cpu import ExecutionState
from lmc.model import LMCError


SCHEMA_VERSION = 1


class SnapshotError(LMCError):
    pass


def dump_state(state: ExecutionState) -> str:
    return json.dumps(state.to_json(), indent=2)


def parse_state(data: object) -> ExecutionState:
    if not isinstance(data, dict):
        raise SnapshotError("Snapshot must be a JSON object.")
    schema_version = data.get("schema_version")
    if not isinstance(schema_version, int):
        raise SnapshotError("schema_version must be an integer.")
    if schema_version != SCHEMA_VERSION:
        raise SnapshotError(f"Unsupported schema_version: {schema_version}")
    try:
        return ExecutionState.from_json(data)
    except ValueError as exc:
        raise SnapshotError(f"Invalid snapshot: {exc}") from exc


def save_state(path: Path | str, state: ExecutionState) -> Path:
    resolved = Path(path).expanduser()
    try:
        with resolved.open("w", encoding="utf-8") as handle:
            json.dump(state.to_json(), handle, indent=2)
    except OSError as exc:
        raise SnapshotError(f"Failed to write snapshot: {exc}") from exc
    return resolved


def save_image(path: Path | str, image: Sequence[int]) -> Path:
    return save_state(path, ExecutionState.from_image(image))


def load_state(path: Path | str) -> ExecutionState:
    resolved = Path(path).expanduser()
    if not resolved.exists():
        raise SnapshotError(f"Snapshot not found: {resolved}")
    try:
        with resolved.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
    except json.JSONDecodeError as exc:
        raise SnapshotError(f"Invalid JSON in {resolved}: {exc}") from exc
    except OSError as exc:
        raise SnapshotError(f"Failed to read snapshot: {exc}") from exc
    return parse_state(data)
