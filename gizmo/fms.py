"""Field management system configuration, team roster and integrations."""

from __future__ import annotations

import csv
import re
import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import IntEnum
from typing import IO, Any, Union

from .gssconfig import (
    PathType,
    _as_bool,
    _as_int,
    _as_str,
    _decode_first,
    _encode,
    _lookup,
    _require_mapping,
)
from .mac import _tdiv, _tmod, number_to_mac

AUTOMATION_USER = "gizmo-fms"
"""User created on remote systems so the FMS can manage them."""

VIEW_ONLY_USER = "gizmo-ro"
"""User created on remote systems for read-only debugging access."""

FIRST_TEAM_VLAN = 500

_INT_RE = re.compile(r"[+-]?[0-9]+")

# Attribute name and JSON key of every plain string setting of FMSConfig.
_STRING_FIELDS = (
    ("fms_mac", "FMSMac"),
    ("radio_mode", "RadioMode"),
    ("auto_user", "AutoUser"),
    ("auto_pass", "AutoPass"),
    ("view_user", "ViewUser"),
    ("view_pass", "ViewPass"),
    ("admin_pass", "AdminPass"),
    ("infrastructure_ssid", "InfrastructureSSID"),
    ("infrastructure_psk", "InfrastructurePSK"),
    ("advanced_bgp_ip", "AdvancedBGPIP"),
    ("advanced_bgp_peer_ip", "AdvancedBGPPeerIP"),
)


class Integration(IntEnum):
    """External systems that may be switched on to talk to the FMS."""

    PCSM = 2


INTEGRATION_NAMES: dict[Integration, str] = {
    Integration.PCSM: "BEST Robotics PCSM",
}

_INTEGRATION_KEYS = {name: integration for integration, name in INTEGRATION_NAMES.items()}

IntegrationValue = Union[Integration, int]


def integrations_to_strings(integrations: Iterable[IntegrationValue]) -> list[str]:
    """Return display names; unknown integrations map to an empty string."""
    return [
        INTEGRATION_NAMES.get(i, "") if isinstance(i, Integration) else "" for i in integrations
    ]


def integrations_from_strings(names: Iterable[str]) -> list[Integration]:
    """Parse display names, skipping any that are not recognised."""
    return [_INTEGRATION_KEYS[name] for name in names if name in _INTEGRATION_KEYS]


def _atoi(text: str) -> int:
    if not _INT_RE.fullmatch(text):
        raise ValueError(f"invalid integer: {text!r}")
    return int(text)


def _coerce_integration(value: Any) -> IntegrationValue:
    number = _as_int(value, "Integrations")
    try:
        return Integration(number)
    except ValueError:
        return number


def _as_str_list(value: Any, key: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"field {key}: expected a list, got {value!r}")
    return [_as_str(item, key) for item in value]


def _int_keyed(value: Any, key: str) -> dict[int, Any]:
    if value is None:
        return {}
    mapping = _require_mapping(value, key)
    out = {}
    for name, item in mapping.items():
        try:
            number = _atoi(str(name))
        except ValueError:
            raise ValueError(f"field {key}: bad map key {name!r}") from None
        out[number] = item if item is not None else {}
    return out


@dataclass
class Team:
    """A team as seen by the FMS."""

    name: str = ""
    ssid: str = ""
    psk: str = ""
    vlan: int = 0
    cidr: str = ""
    gizmo_mac: str = ""
    ds_mac: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "Name": self.name,
            "SSID": self.ssid,
            "PSK": self.psk,
            "VLAN": self.vlan,
            "CIDR": self.cidr,
            "GizmoMAC": self.gizmo_mac,
            "DSMAC": self.ds_mac,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Team:
        data = _require_mapping(data, "Team")
        return cls(
            name=_as_str(_lookup(data, "Name"), "Name"),
            ssid=_as_str(_lookup(data, "SSID"), "SSID"),
            psk=_as_str(_lookup(data, "PSK"), "PSK"),
            vlan=_as_int(_lookup(data, "VLAN"), "VLAN"),
            cidr=_as_str(_lookup(data, "CIDR"), "CIDR"),
            gizmo_mac=_as_str(_lookup(data, "GizmoMAC"), "GizmoMAC"),
            ds_mac=_as_str(_lookup(data, "DSMAC"), "DSMAC"),
        )


@dataclass
class Field:
    """A single competition field."""

    id: int = 0
    ip: str = ""
    mac: str = ""
    channel: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"ID": self.id, "IP": self.ip, "MAC": self.mac, "Channel": self.channel}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Field:
        data = _require_mapping(data, "Field")
        return cls(
            id=_as_int(_lookup(data, "ID"), "ID"),
            ip=_as_str(_lookup(data, "IP"), "IP"),
            mac=_as_str(_lookup(data, "MAC"), "MAC"),
            channel=_as_str(_lookup(data, "Channel"), "Channel"),
        )


@dataclass
class FMSConfig:
    """Everything needed to set up the FMS and the network behind it.

    ``radio_mode`` is one of ``NONE``, ``FIELD`` or ``DS``.
    """

    teams: dict[int, Team] = field(default_factory=dict)
    fields: dict[int, Field] = field(default_factory=dict)
    fms_mac: str = ""
    radio_mode: str = ""
    auto_user: str = ""
    auto_pass: str = ""
    view_user: str = ""
    view_pass: str = ""
    admin_pass: str = ""
    integrations: list[IntegrationValue] = field(default_factory=list)
    infrastructure_visible: bool = False
    infrastructure_ssid: str = ""
    infrastructure_psk: str = ""
    fixed_dns: list[str] = field(default_factory=list)
    advanced_bgp_as: int = 0
    advanced_bgp_ip: str = ""
    advanced_bgp_peer_ip: str = ""
    advanced_bgp_vlan: int = 0

    def integration_enabled(self, integration: IntegrationValue) -> bool:
        """Report whether *integration* is switched on."""
        return integration in self.integrations

    def to_dict(self) -> dict[str, Any]:
        return {
            "Teams": {str(k): self.teams[k].to_dict() for k in sorted(self.teams, key=str)},
            "Fields": {str(k): self.fields[k].to_dict() for k in sorted(self.fields, key=str)},
            "FMSMac": self.fms_mac,
            "RadioMode": self.radio_mode,
            "AutoUser": self.auto_user,
            "AutoPass": self.auto_pass,
            "ViewUser": self.view_user,
            "ViewPass": self.view_pass,
            "AdminPass": self.admin_pass,
            "Integrations": [int(i) for i in self.integrations],
            "InfrastructureVisible": self.infrastructure_visible,
            "InfrastructureSSID": self.infrastructure_ssid,
            "InfrastructurePSK": self.infrastructure_psk,
            "FixedDNS": list(self.fixed_dns),
            "AdvancedBGPAS": self.advanced_bgp_as,
            "AdvancedBGPIP": self.advanced_bgp_ip,
            "AdvancedBGPPeerIP": self.advanced_bgp_peer_ip,
            "AdvancedBGPVLAN": self.advanced_bgp_vlan,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> FMSConfig:
        data = _require_mapping(data, "FMSConfig")

        raw_integrations = _lookup(data, "Integrations")
        if raw_integrations is not None and not isinstance(raw_integrations, list):
            raise ValueError("field Integrations: expected a list")

        strings = {attr: _as_str(_lookup(data, key), key) for attr, key in _STRING_FIELDS}

        return cls(
            teams={k: Team.from_dict(v) for k, v in _int_keyed(_lookup(data, "Teams"), "Teams").items()},
            fields={
                k: Field.from_dict(v) for k, v in _int_keyed(_lookup(data, "Fields"), "Fields").items()
            },
            integrations=[_coerce_integration(v) for v in raw_integrations or []],
            infrastructure_visible=_as_bool(
                _lookup(data, "InfrastructureVisible"), "InfrastructureVisible"
            ),
            fixed_dns=_as_str_list(_lookup(data, "FixedDNS"), "FixedDNS"),
            advanced_bgp_as=_as_int(_lookup(data, "AdvancedBGPAS"), "AdvancedBGPAS"),
            advanced_bgp_vlan=_as_int(_lookup(data, "AdvancedBGPVLAN"), "AdvancedBGPVLAN"),
            **strings,
        )

    def save(self, path: PathType) -> None:
        """Write the configuration as JSON to *path*."""
        with open(path, "w", encoding="utf-8") as fh:
            fh.write(_encode(self.to_dict()))


def load_config(path: PathType) -> FMSConfig:
    """Read an FMS configuration from the JSON file at *path*."""
    with open(path, encoding="utf-8") as fh:
        return FMSConfig.from_dict(_decode_first(fh.read()))


def _random_token() -> str:
    return uuid.uuid4().hex


def load_teams(stream: IO[str]) -> dict[int, Team]:
    """Build the team roster from a CSV export.

    The first row is the header; ``Team Name``, ``Team Number`` and
    ``Hub Name`` columns are recognised.  VLANs are assigned in row
    order starting at 500 and wireless credentials are random.
    """
    teams: dict[int, Team] = {}
    header: list[str] | None = None
    vlan = FIRST_TEAM_VLAN
    reader = csv.reader(stream)
    try:
        for record in reader:
            if not record:
                continue
            if header is None:
                header = [
                    col.replace("Team Name", "Name")
                    .replace("Team Number", "Number")
                    .replace("Hub Name", "Hub")
                    for col in record
                ]
                continue
            if len(record) != len(header):
                raise ValueError(f"record on line {reader.line_num}: wrong number of fields")
            row = dict(zip(header, record))
            name = row.get("Name", "")
            number = row.get("Number", "")
            try:
                num = _atoi(number)
            except ValueError:
                raise ValueError(f"bad team number: {name} {number}") from None
            teams[num] = Team(
                vlan=vlan,
                name=name,
                ssid=_random_token(),
                psk=_random_token(),
                cidr=f"10.{_tdiv(num, 100)}.{_tmod(num, 100)}.0/24",
                gizmo_mac=number_to_mac(num, 0),
                ds_mac=number_to_mac(num, 1),
            )
            vlan += 1
    except csv.Error as exc:
        raise ValueError(str(exc)) from exc
    return teams