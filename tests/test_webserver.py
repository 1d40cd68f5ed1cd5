import json
import threading

import pytest

from gizmo.fms import FMSConfig, Field, Integration, Team
from gizmo.tlm import TLM
from gizmo.webserver import Server, filter_value_ok, quads_for_fields


class FakeController:
    def __init__(self, fail=False):
        self.fail = fail
        self.synced = []

    def sync_tlm(self, tlm):
        if self.fail:
            raise ValueError("unknown team")
        self.synced.append(dict(tlm))

    def converge(self, refresh, target=""):
        pass

    def cycle_radio(self, band):
        pass


def make_config(integrations=()):
    return FMSConfig(
        teams={1234: Team(name="Robots", vlan=500)},
        fields={0: Field(id=1, ip="100.64.0.10", channel="6"), 1: Field(id=2, ip="100.64.0.11", channel="11")},
        radio_mode="FIELD",
        integrations=list(integrations),
    )


@pytest.fixture
def setup():
    controller = FakeController()
    tlm = TLM(controller=controller)
    server = Server(tlm, make_config())
    return server, tlm, controller, server.app.test_client()


def test_quads_for_fields_order():
    quads = quads_for_fields({1: Field(id=2), 0: Field(id=1)})
    assert len(quads) == 8
    assert quads[:4] == ["field1:red", "field1:blue", "field1:green", "field1:yellow"]
    assert all(q.startswith("field2:") for q in quads[4:])


def test_filter_value_ok():
    assert filter_value_ok("0.1.7", "0.1.6, 0.1.7") is True
    assert filter_value_ok(" RAMDISK ", "RAMDISK") is True
    assert filter_value_ok("x", "a,b") is False


def test_configured_quads(setup):
    server, _, _, client = setup
    resp = client.get("/admin/cfg/quads")
    assert resp.status_code == 200
    assert resp.get_json() == quads_for_fields(server.fms_config.fields)


def test_ds_config_bad_id(setup):
    _, _, _, client = setup
    assert client.get("/gizmo/ds/abc/config").status_code == 400


def test_ds_config_unmapped_team(setup):
    _, _, _, client = setup
    assert client.get("/gizmo/ds/1234/config").status_code == 404


def test_ds_config_mapped_team(setup):
    _, tlm, _, client = setup
    tlm.insert_on_demand_map({1234: "field2:red"})
    resp = client.get("/gizmo/ds/1234/config")
    assert resp.status_code == 200
    assert resp.get_json() == {"RadioMode": "FIELD", "RadioChannel": "11", "Field": 2, "Location": "RED"}


def test_ds_meta_report_and_expiry(setup):
    server, _, _, client = setup
    resp = client.post("/gizmo/ds/1234/meta", data=json.dumps({"Version": "dev", "Bootmode": "RAMDISK"}))
    assert resp.status_code == 200
    assert server.ds_meta[1234].bootmode == "RAMDISK"
    assert server.expire_connections(now=0.0) == []
    assert server.expire_connections(now=server.connected_ds[1234] + 1) == [1234]
    assert 1234 not in server.ds_meta


def test_gizmo_meta_report(setup):
    server, _, _, client = setup
    body = json.dumps({"HardwareVersion": "hw", "FirmwareVersion": "fw"})
    assert client.post("/gizmo/robot/77/meta", data=body).status_code == 200
    assert server.gizmo_meta[77].firmware_version == "fw"
    assert 77 in server.connected_gizmo


@pytest.mark.parametrize("path", ["/gizmo/ds/1/meta", "/gizmo/robot/1/meta"])
def test_meta_report_bad_body(setup, path):
    _, _, _, client = setup
    assert client.post(path, data="not json").status_code == 400
    assert client.post(path.replace("/1/", "/x/"), data="{}").status_code == 400


def test_remap_immediate(setup):
    _, tlm, controller, client = setup
    resp = client.post("/admin/map/immediate", data=json.dumps({"1234": "field1:blue"}))
    assert resp.status_code == 200
    assert tlm.get_current_mapping() == {1234: "field1:blue"}
    assert controller.synced == [{1234: "field1:blue"}]


def test_remap_immediate_bad_body(setup):
    _, _, _, client = setup
    resp = client.post("/admin/map/immediate", data=json.dumps({"abc": "field1:red"}))
    assert resp.status_code == 400
    assert resp.get_data(as_text=True) == "Requests must be a map of team numbers for field locations"


def test_remap_immediate_controller_error():
    server = Server(TLM(controller=FakeController(fail=True)), make_config())
    resp = server.app.test_client().post("/admin/map/immediate", data=json.dumps({"1": "field1:red"}))
    assert resp.status_code == 400
    assert resp.get_data(as_text=True).startswith("Error inserting map: ")


def test_pcsm_disabled(setup):
    _, _, _, client = setup
    resp = client.post("/admin/map/pcsm", data="{}")
    assert resp.status_code == 412
    assert resp.get_data(as_text=True) == "Integration is not enabled!"


def test_pcsm_enabled():
    tlm = TLM(controller=FakeController())
    client = Server(tlm, make_config([Integration.PCSM])).app.test_client()
    match = {"matchNumber": 1, "Fields": [{"fieldNumber": 1, "Teams": [{"teamNumber": 1234, "Quadrant": "Green"}]}]}
    assert client.post("/admin/map/pcsm", data=json.dumps(match)).status_code == 200
    assert tlm.get_current_mapping() == {1234: "field1:green"}
    assert client.post("/admin/map/pcsm", data="{").status_code == 400


def test_current_map_and_prom_sd(setup):
    _, tlm, _, client = setup
    tlm.insert_on_demand_map({1234: "field1:red"})
    assert client.get("/admin/map/current").get_json() == {"1234": "field1:red"}
    sd = client.get("/metrics-sd")
    assert sd.headers["Content-Type"].startswith("application/json")
    assert sd.get_json() == [{"targets": ["10.12.34.2:8080"]}]


def test_serve_signals_startup_and_shuts_down():
    started = threading.Event()
    server = Server(TLM(), make_config(), startup_event=started)
    thread = threading.Thread(target=server.serve, args=("127.0.0.1:0",), daemon=True)
    thread.start()
    assert started.wait(5)
    server.shutdown()
    thread.join(5)
    assert not thread.is_alive()