import json
from pathlib import Path
from typing import Any, List, Mapping, Tuple, Union

from bazelproj.config import GlobalOptions
from bazelproj.details.rule_entry import RuleEntry
from bazelproj.errors import SnapshotError


# Reads a build graph snapshot: {"options": {...}, "rules": [{"label": ..., "type": ...}, ...]}
def parse_snapshot(data: Mapping[str, Any]) -> Tuple[GlobalOptions, List[RuleEntry]]:
    if not isinstance(data, Mapping):
        raise SnapshotError("snapshot must be a JSON object")
    try:
        options = GlobalOptions.from_json(data.get("options", {}))
    except (TypeError, ValueError) as e:
        raise SnapshotError(f"invalid options: {e}") from e
    entries = []
    for index, rule in enumerate(data.get("rules", [])):
        try:
            entries.append(RuleEntry.from_json(rule))
        except KeyError as e:
            raise SnapshotError(f"rule #{index} is missing {e}") from e
    return options, entries


def load_snapshot(path: Union[str, Path]) -> Tuple[GlobalOptions, List[RuleEntry]]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise SnapshotError(f"{path} is not valid JSON: {e}") from e
    return parse_snapshot(data)
