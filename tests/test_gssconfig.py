import json

import pytest

from gizmo.gssconfig import Config, DSMeta, FieldConfig, GizmoMeta, load, save


def test_config_round_trip_through_file(tmp_path):
    cfg = Config(team=42, net_ssid="ssid", net_psk="psk", server_ip="gizmo-ds", field_ip="100.64.0.2")
    path = tmp_path / "gsscfg.json"
    save(cfg, path)
    assert load(path) == cfg


def test_config_file_uses_wire_field_names(tmp_path):
    path = tmp_path / "gsscfg.json"
    save(Config(team=7), path)
    data = json.loads(path.read_text())
    assert set(data) == {"Team", "NetSSID", "NetPSK", "ServerIP", "FieldIP"}
    assert data["Team"] == 7


def test_from_dict_is_case_insensitive():
    cfg = Config.from_dict({"team": 9, "netssid": "abc"})
    assert cfg.team == 9
    assert cfg.net_ssid == "abc"
    assert cfg.net_psk == ""


def test_from_dict_rejects_wrong_type():
    with pytest.raises(ValueError):
        Config.from_dict({"Team": "nine"})


def test_load_rejects_bad_json(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text("{not json")
    with pytest.raises(ValueError):
        load(path)


def test_load_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load(tmp_path / "absent.json")


def test_load_ignores_trailing_data(tmp_path):
    path = tmp_path / "cfg.json"
    path.write_text('{"Team": 3}\n{"Team": 4}\n')
    assert load(path).team == 3


def test_meta_round_trips():
    ds = DSMeta(version="dev", bootmode="RAMDISK")
    gz = GizmoMeta(hardware_version="GIZMO_V1_0_R00", firmware_version="0.1.7")
    assert DSMeta.from_dict(ds.to_dict()) == ds
    assert GizmoMeta.from_dict(gz.to_dict()) == gz


def test_field_config_round_trip():
    fc = FieldConfig(radio_mode="DS", radio_channel="1", field=1, location="PRACTICE")
    assert FieldConfig.from_dict(fc.to_dict()) == fc
    assert fc.to_dict()["RadioMode"] == "DS"


def test_from_dict_requires_object():
    with pytest.raises(ValueError):
        FieldConfig.from_dict([1, 2])