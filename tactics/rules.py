"""
Game rule constants.

Loaded from data/schema/rules.yaml when present; every field has a built-in
default so the engine runs without a data directory.
"""

import logging
import yaml
from dataclasses import dataclass, fields
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class Rules:
    """Tunable constants for map setup, combat and progression."""
    # Map setup
    map_rows: int = 10
    map_columns: int = 10
    water_coverage: float = 0.15
    neutral_unit_count: int = 3
    neutral_min_distance: int = 4
    neutral_max_attempts: int = 200

    # Combat
    fortify_reduction: int = 5
    fortify_heal: int = 10
    kill_xp_bonus: int = 20

    # Progression
    xp_per_level: int = 100
    level_attack_bonus: int = 5
    level_health_bonus: int = 10
    level_up_heal: int = 20
    auto_promote: bool = True

    @classmethod
    def from_dict(cls, data: dict) -> "Rules":
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in data.items():
            if key not in known:
                logger.warning(f"Ignoring unknown rule: {key}")
                continue
            values[key] = value
        return cls(**values)


def load_rules(data_path: Path | str = "data") -> Rules:
    """Load rules from data/schema/rules.yaml, falling back to defaults."""
    rules_path = Path(data_path) / "schema" / "rules.yaml"
    if not rules_path.exists():
        logger.warning(f"Rules file not found: {rules_path}, using defaults")
        return Rules()

    with open(rules_path) as f:
        data = yaml.safe_load(f) or {}

    rules = Rules.from_dict(data.get("rules", {}))
    logger.info(f"Loaded rules from {rules_path}")
    return rules
