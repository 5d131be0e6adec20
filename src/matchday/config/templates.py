"""Team-size templates mapping slot numbers to positional roles."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Mapping, Optional

from matchday.errors import TemplateConfigError


class Position(str, Enum):
    DEFENSE = "defense"
    MIDFIELD = "midfield"
    ATTACK = "attack"


@dataclass(frozen=True)
class TeamTemplate:
    team_size: int
    defenders: int
    midfielders: int
    attackers: int
    name: str = ""

    @property
    def total(self) -> int:
        return self.defenders + self.midfielders + self.attackers

    def counts(self) -> Dict[Position, int]:
        return {
            Position.DEFENSE: self.defenders,
            Position.MIDFIELD: self.midfielders,
            Position.ATTACK: self.attackers,
        }


def _template(team_size: int, defenders: int, midfielders: int, attackers: int) -> TeamTemplate:
    return TeamTemplate(
        team_size=team_size,
        defenders=defenders,
        midfielders=midfielders,
        attackers=attackers,
        name=f"{defenders}-{midfielders}-{attackers}",
    )


_TEAM_TEMPLATES: Dict[int, TeamTemplate] = {
    4: _template(4, 2, 1, 1),
    5: _template(5, 2, 2, 1),
    6: _template(6, 2, 3, 1),
    7: _template(7, 2, 3, 2),
    8: _template(8, 2, 4, 2),
    9: _template(9, 3, 4, 2),
    10: _template(10, 4, 3, 3),
    11: _template(11, 4, 4, 3),
}


def iter_templates(overrides: Optional[Mapping[int, TeamTemplate]] = None) -> Iterable[TeamTemplate]:
    """Return built-in templates with any overrides applied, ordered by size."""

    merged = dict(_TEAM_TEMPLATES)
    merged.update(overrides or {})
    return [merged[size] for size in sorted(merged)]


def validate_template(template: TeamTemplate) -> TeamTemplate:
    if min(template.defenders, template.midfielders, template.attackers) < 0:
        raise TemplateConfigError(f"Template {template.name or template.team_size} has negative counts")
    if template.total != template.team_size:
        raise TemplateConfigError(
            f"Template for {template.team_size}-a-side sums to {template.total} "
            f"({template.defenders}-{template.midfielders}-{template.attackers})"
        )
    return template


def resolve(team_size: int, overrides: Optional[Mapping[int, TeamTemplate]] = None) -> TeamTemplate:
    """Fetch the template for ``team_size``, raising TemplateConfigError if missing or inconsistent."""

    if overrides and team_size in overrides:
        template = overrides[team_size]
    elif team_size in _TEAM_TEMPLATES:
        template = _TEAM_TEMPLATES[team_size]
    else:
        raise TemplateConfigError(f"No team template configured for {team_size}-a-side")
    if template.team_size != team_size:
        raise TemplateConfigError(
            f"Template registered for {team_size}-a-side declares team_size={template.team_size}"
        )
    return validate_template(template)


def position_of(slot_number: int, team_size: int, template: TeamTemplate) -> Position:
    """Bucket a slot into defense/midfield/attack by the template's cumulative counts.

    Slot numbers beyond ``team_size`` (the second team's block in a combined
    numbering) wrap back onto the 1..team_size range.
    """

    if slot_number < 1:
        raise ValueError(f"slot_number must be >= 1, got {slot_number}")
    if team_size < 1:
        raise ValueError(f"team_size must be >= 1, got {team_size}")
    validate_template(template)
    if template.team_size != team_size:
        raise TemplateConfigError(
            f"Template for {template.team_size}-a-side cannot map slots of a {team_size}-a-side team"
        )

    index = (slot_number - 1) % team_size + 1
    if index <= template.defenders:
        return Position.DEFENSE
    if index <= template.defenders + template.midfielders:
        return Position.MIDFIELD
    return Position.ATTACK
