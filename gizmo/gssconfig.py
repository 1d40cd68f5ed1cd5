"""Per-team settings shared by a driver's station and its Gizmo."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from os import PathLike
from typing import Any, Union

PathType = Union[str, "PathLike[str]"]


def _lookup(data: Mapping[str, Any], key: str) -> Any:
    """Find a JSON field by name, preferring an exact match over a case-insensitive one."""
    if key in data:
        return data[key]
    lowered = key.lower()
    for name, value in data.items():
        if isinstance(name, str) and name.lower() == lowered:
            return value
    return None


def _require_mapping(data: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise ValueError(f"{what}: expected a JSON object, got {type(data).__name__}")
    return data


def _as_int(value: Any, key: str) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"field {key}: expected an integer, got {value!r}")
    return value


def _as_str(value: Any, key: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key}: expected a string, got {value!r}")
    return value


def _as_bool(value: Any, key: str) -> bool:
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ValueError(f"field {key}: expected a boolean, got {value!r}")
    return value


def _decode_first(text: str) -> Any:
    """Decode the first JSON value in *text*, ignoring anything after it."""
    value, _ = json.JSONDecoder().raw_decode(text.lstrip())
    return value


def _encode(payload: Any) -> str:
    return json.dumps(payload, separators=(",", ":")) + "\n"


@dataclass
class Config:
    """Settings unique to each driver's station and Gizmo pair."""

    team: int = 0
    net_ssid: str = ""
    net_psk: str = ""
    server_ip: str = ""
    field_ip: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "Team": self.team,
            "NetSSID": self.net_ssid,
            "NetPSK": self.net_psk,
            "ServerIP": self.server_ip,
            "FieldIP": self.field_ip,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Config:
        data = _require_mapping(data, "Config")
        return cls(
            team=_as_int(_lookup(data, "Team"), "Team"),
            net_ssid=_as_str(_lookup(data, "NetSSID"), "NetSSID"),
            net_psk=_as_str(_lookup(data, "NetPSK"), "NetPSK"),
            server_ip=_as_str(_lookup(data, "ServerIP"), "ServerIP"),
            field_ip=_as_str(_lookup(data, "FieldIP"), "FieldIP"),
        )


@dataclass
class DSMeta:
    """Information reported by the driver's station metadata feed."""

    version: str = ""
    bootmode: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"Version": self.version, "Bootmode": self.bootmode}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DSMeta:
        data = _require_mapping(data, "DSMeta")
        return cls(
            version=_as_str(_lookup(data, "Version"), "Version"),
            bootmode=_as_str(_lookup(data, "Bootmode"), "Bootmode"),
        )


@dataclass
class GizmoMeta:
    """Information reported by the Gizmo metadata feed."""

    hardware_version: str = ""
    firmware_version: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "HardwareVersion": self.hardware_version,
            "FirmwareVersion": self.firmware_version,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> GizmoMeta:
        data = _require_mapping(data, "GizmoMeta")
        return cls(
            hardware_version=_as_str(_lookup(data, "HardwareVersion"), "HardwareVersion"),
            firmware_version=_as_str(_lookup(data, "FirmwareVersion"), "FirmwareVersion"),
        )


@dataclass
class FieldConfig:
    """Configuration handed from the field to a driver's station."""

    radio_mode: str = ""
    radio_channel: str = ""
    field: int = 0
    location: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "RadioMode": self.radio_mode,
            "RadioChannel": self.radio_channel,
            "Field": self.field,
            "Location": self.location,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> FieldConfig:
        data = _require_mapping(data, "FieldConfig")
        return cls(
            radio_mode=_as_str(_lookup(data, "RadioMode"), "RadioMode"),
            radio_channel=_as_str(_lookup(data, "RadioChannel"), "RadioChannel"),
            field=_as_int(_lookup(data, "Field"), "Field"),
            location=_as_str(_lookup(data, "Location"), "Location"),
        )


def load(path: PathType) -> Config:
    """Read a config from the JSON file at *path*."""
    with open(path, encoding="utf-8") as fh:
        return Config.from_dict(_decode_first(fh.read()))


def save(config: Config, path: PathType) -> None:
    """Write *config* as JSON to *path*."""
    with open(path, "w", encoding="utf-8") as fh:
        fh.write(_encode(config.to_dict()))