"""YAML export of migration outcomes."""

from pathlib import Path

import yaml  # type: ignore[import-untyped]

from spot2yt.models import MigrationOutcome


def outcome_to_yaml(outcome: MigrationOutcome) -> str:
    """Serialize an outcome to a YAML string."""
    data = {"migration": outcome.to_dict()}
    result: str = yaml.dump(data, default_flow_style=False, allow_unicode=True, sort_keys=False)
    return result


def save_report(path: Path | str, outcome: MigrationOutcome) -> None:
    """Save an outcome report to a YAML file."""
    Path(path).write_text(outcome_to_yaml(outcome), encoding="utf-8")

