"""Fuzzy resolution of free-text vehicle references to directory IDs."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional

from fleet_copilot.log import get_logger
from fleet_copilot.storage.models import VehicleRecord
from fleet_copilot.storage.vehicle_repo import VehicleRepository

logger = get_logger(__name__)

MAX_SUGGESTIONS = 10
_DIGIT_RUN = re.compile(r"\d+")


@dataclass
class MatchResult:
    """Outcome of resolving one search term.

    ``exact`` with a ``vehicle`` is a confident match; ``suggestions`` is
    non-empty only for ambiguous terms; both empty means nothing matched.
    """

    exact: bool
    vehicle: Optional[VehicleRecord] = None
    suggestions: list[dict[str, str]] = field(default_factory=list)

    @property
    def is_ambiguous(self) -> bool:
        return not self.exact and bool(self.suggestions)

    @classmethod
    def found(cls, vehicle: VehicleRecord) -> MatchResult:
        return cls(exact=True, vehicle=vehicle)

    @classmethod
    def ambiguous(cls, candidates: list[VehicleRecord]) -> MatchResult:
        return cls(exact=False, suggestions=[v.as_reference() for v in candidates[:MAX_SUGGESTIONS]])

    @classmethod
    def none(cls) -> MatchResult:
        return cls(exact=False)


@dataclass
class Resolution:
    """Outcome of resolving a comma-separated list of terms."""

    vehicle_ids: list[str] = field(default_factory=list)
    names: dict[str, str] = field(default_factory=dict)
    suggestions: dict[str, list[dict[str, str]]] = field(default_factory=dict)

    def add(self, vehicle_id: str, name: Optional[str] = None) -> None:
        if vehicle_id not in self.vehicle_ids:
            self.vehicle_ids.append(vehicle_id)
        if name:
            self.names.setdefault(vehicle_id, name)

    @property
    def needs_clarification(self) -> bool:
        return not self.vehicle_ids and bool(self.suggestions)

    @property
    def is_empty(self) -> bool:
        return not self.vehicle_ids and not self.suggestions


class EntityResolver:
    """Maps user-typed vehicle names to canonical vehicle IDs.

    Tries, in order, an exact name match, a substring match on the whole
    term, then a substring match on each digit run of the term ("camion 606"
    finds "T-606"). The first step that yields exactly one vehicle wins;
    a step with several candidates makes the term ambiguous.
    """

    def __init__(self, vehicles: VehicleRepository):
        self._vehicles = vehicles

    async def find(self, term: str) -> MatchResult:
        term = term.strip()
        if not term:
            return MatchResult.none()

        exact = await self._vehicles.get_by_name(term)
        if exact is not None:
            return MatchResult.found(exact)

        candidates = await self._vehicles.find_containing(term, limit=MAX_SUGGESTIONS)
        if len(candidates) == 1:
            return MatchResult.found(candidates[0])
        if len(candidates) > 1:
            return MatchResult.ambiguous(candidates)

        for number in _DIGIT_RUN.findall(term):
            candidates = await self._vehicles.find_containing(number, limit=MAX_SUGGESTIONS)
            if len(candidates) == 1:
                return MatchResult.found(candidates[0])
            if len(candidates) > 1:
                return MatchResult.ambiguous(candidates)

        return MatchResult.none()

    async def resolve_names(self, names: str) -> Resolution:
        resolution = Resolution()
        for term in (part.strip() for part in names.split(",")):
            if not term:
                continue
            match = await self.find(term)
            if match.exact and match.vehicle is not None:
                resolution.add(match.vehicle.id, match.vehicle.name)
            elif match.suggestions:
                resolution.suggestions[term] = match.suggestions

        logger.debug(
            "vehicle_names_resolved",
            terms=names,
            resolved=len(resolution.vehicle_ids),
            ambiguous=list(resolution.suggestions),
        )
        return resolution

    async def resolve(self, vehicle_names: Optional[str], vehicle_ids: Optional[str]) -> Resolution:
        """Resolve names first, then append explicit IDs (deduplicated)."""
        resolution = await self.resolve_names(vehicle_names) if vehicle_names else Resolution()
        if vehicle_ids:
            for vehicle_id in (part.strip() for part in vehicle_ids.split(",")):
                if not vehicle_id or vehicle_id in resolution.vehicle_ids:
                    continue
                vehicle = await self._vehicles.get_by_id(vehicle_id)
                resolution.add(vehicle_id, vehicle.name if vehicle else None)
        return resolution
