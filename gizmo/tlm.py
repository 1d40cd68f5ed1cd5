"""Team location mapping backed by the field network controller."""

from __future__ import annotations

import json
import logging
import os
import threading
from collections.abc import Mapping
from typing import Any, Optional, Protocol

from .gssconfig import PathType, _decode_first, _require_mapping
from .fms import _atoi


class NoMappingError(LookupError):
    """Raised when a team has no field location."""


class Controller(Protocol):
    def sync_tlm(self, tlm: Mapping[int, str]) -> None: ...

    def converge(self, refresh: bool, target: str = "") -> None: ...

    def cycle_radio(self, band: str) -> None: ...


class TLM:
    """Maps team numbers to field locations of the form ``fieldN:quad``."""

    def __init__(
        self,
        controller: Optional[Controller] = None,
        savepath: Optional[PathType] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._controller = controller
        self.savepath = os.fspath(savepath) if savepath is not None else None
        self._log = logger.getChild("tlm") if logger is not None else logging.getLogger(__name__)
        self._lock = threading.RLock()
        self._mapping: dict[int, str] = {}

    def get_field_for_team(self, team: int) -> str:
        """Return the location of *team*; raise :class:`NoMappingError` if it has none."""
        with self._lock:
            try:
                return self._mapping[team]
            except KeyError:
                raise NoMappingError(f"no mapping for team {team}") from None

    def insert_on_demand_map(self, mapping: Mapping[int, str]) -> None:
        """Replace the mapping immediately and push it out to the field network."""
        if self._controller is None:
            raise RuntimeError("no network controller configured")
        with self._lock:
            self._mapping = dict(mapping)
            try:
                self._controller.sync_tlm(self._mapping)
            except Exception as exc:
                self._log.error("Error syncronizing match state error=%s", exc)
                raise
            # Skipping the refresh is much faster; reconcile exists to repair drift.
            try:
                self._controller.converge(False, "")
            except Exception as exc:
                self._log.error("Error converging fields error=%s", exc)
                raise
            try:
                self._controller.cycle_radio("2ghz")
            except Exception as exc:
                self._log.error("Error cycling radios error=%s", exc)
                raise
            try:
                self.save_state()
            except (OSError, ValueError) as exc:
                self._log.warning("Error persisting match state error=%s", exc)

    def get_current_mapping(self) -> dict[int, str]:
        """Return a copy of the current team to location mapping."""
        with self._lock:
            return dict(self._mapping)

    def get_current_teams(self) -> list[int]:
        """Return the teams expected on the field right now, in ascending order."""
        with self._lock:
            return sorted(self._mapping)

    def save_state(self) -> None:
        """Write the mapping to the save path."""
        if self.savepath is None:
            raise ValueError("no save path configured")
        with self._lock:
            payload = {str(team): self._mapping[team] for team in sorted(self._mapping)}
        with open(self.savepath, "w", encoding="utf-8") as fh:
            fh.write(json.dumps(payload, separators=(",", ":")) + "\n")

    def recover_state(self) -> None:
        """Merge the mapping stored at the save path into the current one."""
        if self.savepath is None:
            raise ValueError("no save path configured")
        with open(self.savepath, encoding="utf-8") as fh:
            data: Any = _decode_first(fh.read())
        if data is None:
            return
        data = _require_mapping(data, "TLM state")
        recovered: dict[int, str] = {}
        for key, value in data.items():
            try:
                team = _atoi(str(key))
            except ValueError:
                raise ValueError(f"TLM state: bad team number {key!r}") from None
            if value is None:
                value = ""
            if not isinstance(value, str):
                raise ValueError(f"TLM state: bad location for team {team}: {value!r}")
            recovered[team] = value
        with self._lock:
            self._mapping.update(recovered)