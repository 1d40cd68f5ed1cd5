"""Match data sent by the BEST Robotics PC Scoring Manager."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .gssconfig import _as_int, _as_str, _lookup, _require_mapping


def _as_object_list(value: Any, key: str) -> list[Mapping[str, Any]]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"field {key}: expected a list, got {value!r}")
    return [_require_mapping(item, key) if item is not None else {} for item in value]


@dataclass
class PCSMTeam:
    """A team placed in a quadrant for a match."""

    number: int = 0
    name: str = ""
    quadrant: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PCSMTeam:
        data = _require_mapping(data, "PCSMTeam")
        return cls(
            number=_as_int(_lookup(data, "teamNumber"), "teamNumber"),
            name=_as_str(_lookup(data, "Name"), "Name"),
            quadrant=_as_str(_lookup(data, "Quadrant"), "Quadrant"),
        )


@dataclass
class PCSMField:
    """One field taking part in a match."""

    number: int = 0
    teams: list[PCSMTeam] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PCSMField:
        data = _require_mapping(data, "PCSMField")
        return cls(
            number=_as_int(_lookup(data, "fieldNumber"), "fieldNumber"),
            teams=[PCSMTeam.from_dict(t) for t in _as_object_list(_lookup(data, "Teams"), "Teams")],
        )


@dataclass
class PCSMMatch:
    """A match as serialised by the scoring manager."""

    number: int = 0
    fields: list[PCSMField] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PCSMMatch:
        """Build a match from decoded JSON; raise ValueError on malformed data."""
        if data is None:
            return cls()
        data = _require_mapping(data, "PCSMMatch")
        return cls(
            number=_as_int(_lookup(data, "matchNumber"), "matchNumber"),
            fields=[
                PCSMField.from_dict(f) for f in _as_object_list(_lookup(data, "Fields"), "Fields")
            ],
        )

    def to_tlm(self) -> dict[int, str]:
        """Return a team to ``fieldN:quad`` mapping; empty slots (team 0) are skipped."""
        return {
            team.number: f"field{fld.number}:{team.quadrant.lower()}"
            for fld in self.fields
            for team in fld.teams
            if team.number != 0
        }