import json
import socket
import threading
import time
import urllib.request

import pytest

from gizmo.metrics import GaugeVec, Metrics


def _report(**overrides):
    data = {
        "ControlFrameAge": 250,
        "ControlFramesReceived": 42,
        "VBat": 12,
        "VBatM": 100000,
        "VBatB": 0,
        "WatchdogRemaining": 2500,
        "WatchdogOK": True,
        "RSSI": -50,
        "WifiReconnects": 3,
        "PwrBoard": True,
        "PwrPico": True,
        "PwrGPIO": False,
        "PwrServo": True,
        "PwrMainA": True,
        "PwrMainB": False,
        "PwrPixels": True,
    }
    data.update(overrides)
    return json.dumps(data).encode()


def test_gauge_set_get_delete():
    g = GaugeVec("gizmo", "robot", "rssi", "help", "team")
    assert g.name == "gizmo_robot_rssi"
    g.set("1234", -40)
    assert g.get("1234") == -40.0
    assert g.delete("1234") is True
    assert g.delete("1234") is False
    with pytest.raises(KeyError):
        g.get("1234")


def test_gauge_expose_format():
    g = GaugeVec("gizmo", "robot", "rssi", "WiFi strength", "team")
    assert g.expose() == ""
    g.set("1234", -50)
    text = g.expose()
    assert "# TYPE gizmo_robot_rssi gauge" in text
    assert 'gizmo_robot_rssi{team="1234"} -50' in text


def test_parse_report_sets_gauges():
    m = Metrics()
    m.parse_report("1234", _report())
    assert m.robot_rssi.get("1234") == -50
    assert m.robot_wifi_reconnects.get("1234") == 3
    assert m.robot_control_frames.get("1234") == 42
    assert m.robot_watchdog_lifetime.get("1234") == 2.5
    assert m.robot_control_frame_age.get("1234") == 0.25
    assert m.robot_vbat.get("1234") == pytest.approx(13.0)
    assert m.robot_power_board.get("1234") == 1.0
    assert m.robot_power_gpio.get("1234") == 0.0
    assert m.robot_watchdog_ok.get("1234") == 1.0
    assert m.robot_last_interaction.get("1234") <= time.time()


def test_parse_report_accepts_lowercase_keys():
    m = Metrics()
    m.parse_report("7", json.dumps({"rssi": -70, "pwrboard": True}))
    assert m.robot_rssi.get("7") == -70
    assert m.robot_power_board.get("7") == 1.0


@pytest.mark.parametrize(
    "payload",
    [b"not json", b'{"RSSI": "strong"}', b'{"RSSI": 1.5}', b"[1, 2]", b'{"VBat": 99999999999}'],
)
def test_parse_report_rejects_bad_data(payload):
    m = Metrics()
    with pytest.raises(ValueError):
        m.parse_report("1", payload)
    with pytest.raises(KeyError):
        m.robot_rssi.get("1")


def test_mqtt_callback_extracts_team():
    m = Metrics()
    m.mqtt_callback("robot/5678/stats", _report(RSSI=-61))
    assert m.robot_rssi.get("5678") == -61


def test_mqtt_callback_bad_topic():
    with pytest.raises(ValueError):
        Metrics().mqtt_callback("stats", _report())


def test_delete_zombie_keeps_last_interaction():
    m = Metrics()
    m.parse_report("1234", _report())
    m.delete_zombie_robot("1234")
    with pytest.raises(KeyError):
        m.robot_rssi.get("1234")
    with pytest.raises(KeyError):
        m.robot_vbat.get("1234")
    assert m.robot_last_interaction.get("1234") > 0


def test_flush_zombies_only_removes_stale():
    m = Metrics()
    m.parse_report("1", _report())
    now = time.time()
    assert m.flush_zombies(now + 5) == []
    assert m.robot_rssi.get("1") == -50
    assert m.flush_zombies(now + 20) == ["1"]
    with pytest.raises(KeyError):
        m.robot_rssi.get("1")


def test_expose_contains_all_reported_gauges():
    m = Metrics()
    m.parse_report("1234", _report())
    text = m.expose()
    assert 'gizmo_robot_rssi{team="1234"} -50' in text
    assert "# HELP gizmo_robot_battery_voltage Robot Battery volage." in text
    assert text.count("# TYPE ") == 15


def test_builtin_webserver_serves_metrics():
    with socket.socket() as s:
        s.bind(("127.0.0.1", 0))
        port = s.getsockname()[1]

    m = Metrics()
    m.parse_report("42", _report(RSSI=-33))
    thread = threading.Thread(target=m.builtin_webserver, args=(f"127.0.0.1:{port}",), daemon=True)
    thread.start()
    body = None
    for _ in range(50):
        try:
            with urllib.request.urlopen(f"http://127.0.0.1:{port}/metrics", timeout=2) as resp:
                body = resp.read().decode()
            break
        except OSError:
            time.sleep(0.05)
    m.shutdown()
    thread.join(timeout=5)
    assert body is not None
    assert 'gizmo_robot_rssi{team="42"} -33' in body
    assert not thread.is_alive()


def test_bad_bind_raises():
    with pytest.raises(ValueError):
        Metrics().builtin_webserver("nonsense")