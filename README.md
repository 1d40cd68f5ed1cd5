# gizmo

A Python library for running robotics competitions on the Gizmo platform.
It covers the configuration files shared by a driver's station and its
Gizmo board, the field management system (FMS) configuration and team
roster, the team location mapper, robot telemetry gauges, the FMS web
API, gamepad handling, a watchdog timer and a serial service that hands
configuration to Gizmo boards.

## Installation

```
pip install .
```

For the test suite:

```
pip install ".[test]"
pytest
```

## Modules

### `gizmo.gssconfig`

Dataclasses for the per-team settings and metadata reports:
`Config` (team, network SSID/PSK, server and field IPs), `DSMeta`,
`GizmoMeta` and `FieldConfig`. Each has `to_dict()` and `from_dict()`
using the JSON key names the devices exchange (`Team`, `NetSSID`, ...).
`load(path)` and `save(config, path)` read and write a `gsscfg.json`.

```python
from gizmo.gssconfig import Config, load, save

cfg = Config(team=1234, net_ssid="ssid", net_psk="placeholder", server_ip="ds.gizmo")
save(cfg, "gsscfg.json")
assert load("gsscfg.json") == cfg
```

### `gizmo.mac`

`number_to_mac(team, index)` encodes a team number as a locally
administered MAC address, one decimal digit per nibble:

```python
from gizmo.mac import number_to_mac

number_to_mac(1234, 1)  # "02:00:00:12:34:01"
```

### `gizmo.fms`

`FMSConfig` holds teams, fields, radio mode, credentials, enabled
integrations and advanced network settings; `load_config(path)` reads
`fms.json` and `FMSConfig.save(path)` writes it. `load_teams(stream)`
builds the roster from a CSV export (columns `Team Name`, `Team Number`,
`Hub Name`), assigning VLANs from 500 in row order, random wireless
credentials, a `10.X.Y.0/24` network and MAC addresses for each team.
`Integration`, `integrations_to_strings()` and
`integrations_from_strings()` handle the optional integrations (currently
the BEST Robotics PCSM).

```python
from gizmo.fms import load_teams

with open("teams.csv", newline="") as fh:
    teams = load_teams(fh)
```

### `gizmo.tlm`

`TLM` maps team numbers to field locations such as `field1:red`.
`insert_on_demand_map()` replaces the mapping and pushes it to a network
controller object supplied by the caller (one with `sync_tlm`,
`converge` and `cycle_radio` methods), then saves it. `save_state()` and
`recover_state()` persist the mapping to a JSON file;
`get_field_for_team()` raises `NoMappingError` for unmapped teams.

### `gizmo.pcsm`

`PCSMMatch.from_dict()` reads a match sent by the BEST Robotics PC
Scoring Manager and `to_tlm()` turns it into a team location mapping,
skipping empty slots.

### `gizmo.webserver`

`Server(tlm, fms_config)` is a Flask application with these endpoints:

- `GET /gizmo/ds/<team>/config` – field configuration for a driver's station
- `POST /gizmo/ds/<team>/meta`, `POST /gizmo/robot/<team>/meta` – metadata reports
- `GET /admin/cfg/quads` – configured quadrants
- `POST /admin/map/immediate` – replace the team mapping
- `POST /admin/map/pcsm` – replace the mapping from a PCSM match (when enabled)
- `GET /admin/map/current` – current mapping
- `GET /metrics-sd` – Prometheus service discovery targets

`serve(bind)` runs it until `shutdown()`; devices that stop reporting are
forgotten after five seconds (`expire_connections()`). `quads_for_fields()`
and `filter_value_ok()` are available as helpers.

### `gizmo.metrics`

`Metrics` keeps one `GaugeVec` per robot statistic, updated by
`parse_report(team, data)` or `mqtt_callback(topic, payload)`.
`expose()` renders them in the Prometheus text format and
`builtin_webserver(bind)` serves them on `/metrics`. Robots silent for
more than ten seconds are removed by `flush_zombies()`, which
`start_flusher()` runs in the background.

### `gizmo.configserver`

`ConfigServer(provider)` scans serial ports; when a Gizmo board is found
it waits for the `GIZMO_REQUEST_CONFIG` handshake and writes the
`Config` returned by `provider` as JSON. `oneshot=True` stops after the
first cycle.

### `gizmo.gamepad`, `gizmo.watchdog`, `gizmo.buildinfo`

`JSController` reads a Linux joystick (6 axes, 12 buttons) and returns
`Values`, reporting idle values until the stick sends real data;
`map_range()`, `idle_gamepad()` and `values_from_state()` do the
conversion. `Dog` calls a function if `feed()` is not called in time.
`version_lines()` returns the version, commit and build date.

## What this package does not do

It is a library only: it installs no command-line program, so there is
no configuration wizard, remap tool or launcher for the FMS server. It
does not configure the operating system (services, hostname, packages),
does not program or reconcile field routers and access points (the
`TLM` expects the caller to supply that controller), does not run an
MQTT broker, and does not serve a heads-up display page or bundled
documentation.