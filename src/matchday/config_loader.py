"""Persist and load balancing profiles (weights, template overrides, column mapping)."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict

from matchday.config.templates import TeamTemplate, validate_template
from matchday.models import BalanceWeights


@dataclass
class BalanceProfile:
    weights: BalanceWeights = field(default_factory=BalanceWeights)
    templates: Dict[int, TeamTemplate] = field(default_factory=dict)
    players_mapping: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def load(cls, path: Path) -> "BalanceProfile":
        data = json.loads(path.read_text(encoding="utf-8"))
        templates: Dict[int, TeamTemplate] = {}
        for size, counts in (data.get("templates") or {}).items():
            template = TeamTemplate(
                team_size=int(size),
                defenders=int(counts["defenders"]),
                midfielders=int(counts["midfielders"]),
                attackers=int(counts["attackers"]),
                name=counts.get("name", ""),
            )
            templates[template.team_size] = validate_template(template)
        return cls(
            weights=BalanceWeights.model_validate(data.get("weights") or {}),
            templates=templates,
            players_mapping=data.get("players_mapping", {}),
        )

    def save(self, path: Path) -> None:
        payload = {
            "weights": self.weights.model_dump(mode="json"),
            "templates": {
                str(size): {
                    "defenders": template.defenders,
                    "midfielders": template.midfielders,
                    "attackers": template.attackers,
                    "name": template.name,
                }
                for size, template in sorted(self.templates.items())
            },
            "players_mapping": self.players_mapping,
        }
        path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
