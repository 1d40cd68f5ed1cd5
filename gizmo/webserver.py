"""HTTP interface of the field management system."""

from __future__ import annotations

import json
import logging
import threading
import time
from collections.abc import Iterable, Mapping
from socketserver import ThreadingMixIn
from typing import Any, Optional, Protocol, Union
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

from flask import Flask, Response, request

from .fms import FMSConfig, Field, Integration, _atoi
from .gssconfig import DSMeta, FieldConfig, GizmoMeta, _decode_first, _encode
from .mac import _tdiv, _tmod
from .metrics import _split_bind
from .pcsm import PCSMMatch

QUAD_COLORS = ("red", "blue", "green", "yellow")
CONNECTION_LIFETIME = 5.0
UPKEEP_INTERVAL = 1.0


class TeamLocationMapper(Protocol):
    def get_field_for_team(self, team: int) -> str: ...

    def get_current_mapping(self) -> dict[int, str]: ...

    def insert_on_demand_map(self, mapping: Mapping[int, str]) -> None: ...


def quads_for_fields(fields: Union[Mapping[Any, Field], Iterable[Field]]) -> list[str]:
    """List every ``fieldN:colour`` quadrant of the given fields, in field order."""
    values = fields.values() if isinstance(fields, Mapping) else fields
    return [
        f"field{fld.id}:{color}"
        for fld in sorted(values, key=lambda f: f.id)
        for color in QUAD_COLORS
    ]


def filter_value_ok(value: Any, allowed: str) -> bool:
    """Report whether *value* is one of the comma separated entries in *allowed*."""
    wanted = str(value).strip()
    return any(wanted == entry.strip() for entry in allowed.split(","))


def _json_response(payload: Any, status: int = 200) -> Response:
    return Response(_encode(payload), status=status, mimetype="application/json")


def _text_response(text: str, status: int) -> Response:
    return Response(text, status=status, mimetype="text/plain")


class _ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    daemon_threads = True


class Server:
    """Serves driver's station configuration, metadata reports and admin endpoints."""

    def __init__(
        self,
        tlm: TeamLocationMapper,
        fms_config: Optional[FMSConfig] = None,
        logger: Optional[logging.Logger] = None,
        startup_event: Optional[threading.Event] = None,
    ) -> None:
        self.tlm = tlm
        self.fms_config = fms_config if fms_config is not None else FMSConfig()
        self.quads = quads_for_fields(self.fms_config.fields)
        self._log = logger.getChild("web") if logger is not None else logging.getLogger(__name__)
        self._startup_event = startup_event

        self._lock = threading.RLock()
        self.connected_ds: dict[int, float] = {}
        self.connected_gizmo: dict[int, float] = {}
        self.ds_meta: dict[int, DSMeta] = {}
        self.gizmo_meta: dict[int, GizmoMeta] = {}

        self._stop = threading.Event()
        self._serving = threading.Event()
        self._server: Optional[_ThreadingWSGIServer] = None

        self.app = Flask(__name__)
        routes = [
            ("/gizmo/ds/<team_id>/config", "GET", self._gizmo_config),
            ("/gizmo/ds/<team_id>/meta", "POST", self._ds_meta_report),
            ("/gizmo/robot/<team_id>/meta", "POST", self._gizmo_meta_report),
            ("/admin/cfg/quads", "GET", self._configured_quads),
            ("/admin/map/immediate", "POST", self._remap_teams),
            ("/admin/map/pcsm", "POST", self._remap_teams_pcsm),
            ("/admin/map/current", "GET", self._current_team_map),
            ("/metrics-sd", "GET", self._prom_sd),
        ]
        for rule, method, view in routes:
            self.app.add_url_rule(rule, view.__name__, view, methods=[method])

    # Lifecycle

    def serve(self, bind: str = ":8080") -> None:
        """Bind to *bind* (``host:port``) and serve until :meth:`shutdown`."""
        host, port = _split_bind(bind)
        log = self._log

        class Handler(WSGIRequestHandler):
            def log_message(self, fmt: str, *args: Any) -> None:
                log.debug(fmt, *args)

        self._log.info("HTTP is starting")
        server = make_server(
            host, port, self.app, server_class=_ThreadingWSGIServer, handler_class=Handler
        )
        upkeep = threading.Thread(target=self._connected_upkeep, name="web-upkeep", daemon=True)
        upkeep.start()
        self._server = server
        if self._startup_event is not None:
            self._startup_event.set()
        if self._stop.is_set():
            server.server_close()
            return
        self._serving.set()
        try:
            server.serve_forever(poll_interval=0.1)
        finally:
            self._serving.clear()
            server.server_close()

    def shutdown(self) -> None:
        """Stop serving and stop expiring connections."""
        self._log.info("Stopping...")
        self._stop.set()
        server = self._server
        if server is not None and self._serving.is_set():
            server.shutdown()

    def _connected_upkeep(self) -> None:
        while not self._stop.wait(UPKEEP_INTERVAL):
            self.expire_connections()

    def expire_connections(self, now: Optional[float] = None) -> list[int]:
        """Forget devices whose reports have lapsed; return the teams removed."""
        if now is None:
            now = time.time()
        removed: set[int] = set()
        with self._lock:
            for team, expiry in list(self.connected_ds.items()):
                if now > expiry:
                    del self.connected_ds[team]
                    self.ds_meta.pop(team, None)
                    removed.add(team)
            for team, expiry in list(self.connected_gizmo.items()):
                if now > expiry:
                    del self.connected_gizmo[team]
                    self.gizmo_meta.pop(team, None)
                    removed.add(team)
        return sorted(removed)

    # Handlers

    def _gizmo_config(self, team_id: str) -> Response:
        try:
            team = _atoi(team_id)
        except ValueError:
            return Response(status=400)
        try:
            location = self.tlm.get_field_for_team(team)
        except LookupError:
            return Response(status=404)

        parts = location.split(":", 1)
        try:
            fnum = _atoi(parts[0].replace("field", ""))
        except ValueError:
            fnum = 0
        fld = self.fms_config.fields.get(fnum - 1)
        if fld is None or len(parts) < 2:
            self._log.error("No field for location team=%d location=%s", team, location)
            return Response(status=500)

        cfg = FieldConfig(
            radio_mode=self.fms_config.radio_mode,
            radio_channel=fld.channel,
            field=fnum,
            location=parts[1].upper(),
        )
        return _json_response(cfg.to_dict())

    def _ds_meta_report(self, team_id: str) -> Response:
        try:
            team = _atoi(team_id)
        except ValueError as exc:
            self._log.warning("Bad DS Meta report error=%s", exc)
            return Response(status=400)
        try:
            data = _decode_first(request.get_data(as_text=True))
            meta = DSMeta() if data is None else DSMeta.from_dict(data)
        except ValueError as exc:
            self._log.warning("Error deserializing DS Meta report error=%s", exc)
            return Response(status=400)
        with self._lock:
            self.connected_ds[team] = time.time() + CONNECTION_LIFETIME
            self.ds_meta[team] = meta
        return Response(status=200)

    def _gizmo_meta_report(self, team_id: str) -> Response:
        try:
            team = _atoi(team_id)
        except ValueError as exc:
            self._log.warning("Bad Gizmo Meta Report error=%s", exc)
            return Response(status=400)
        try:
            data = _decode_first(request.get_data(as_text=True))
            meta = GizmoMeta() if data is None else GizmoMeta.from_dict(data)
        except ValueError as exc:
            self._log.warning("Error deserializing Gizmo Meta report error=%s", exc)
            return Response(status=400)
        with self._lock:
            self.connected_gizmo[team] = time.time() + CONNECTION_LIFETIME
            self.gizmo_meta[team] = meta
        return Response(status=200)

    def _configured_quads(self) -> Response:
        return _json_response(self.quads)

    def _insert_map(self, mapping: Mapping[int, str]) -> Optional[Exception]:
        try:
            self.tlm.insert_on_demand_map(mapping)
        except Exception as exc:  # any controller failure is reported to the caller
            return exc
        return None

    def _remap_teams(self) -> Response:
        body = request.get_data(as_text=True)
        try:
            mapping = self._decode_mapping(body)
        except ValueError as exc:
            self._log.warning("Error decoding on-demand mapping error=%s body=%s", exc, body)
            return _text_response("Requests must be a map of team numbers for field locations", 400)

        err = self._insert_map(mapping)
        if err is not None:
            self._log.error("Error remapping teams! error=%s", err)
            return _text_response(f"Error inserting map: {err}", 400)
        self._log.info("Immediately remapped teams! map=%s", mapping)
        return Response(status=200)

    @staticmethod
    def _decode_mapping(body: str) -> dict[int, str]:
        data = json.loads(body)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValueError("expected a JSON object")
        mapping: dict[int, str] = {}
        for key, value in data.items():
            team = _atoi(key)
            if value is None:
                value = ""
            if not isinstance(value, str):
                raise ValueError(f"bad location for team {team}: {value!r}")
            mapping[team] = value
        return mapping

    def _remap_teams_pcsm(self) -> Response:
        if not self.fms_config.integration_enabled(Integration.PCSM):
            return _text_response("Integration is not enabled!", 412)

        body = request.get_data(as_text=True)
        self._log.debug("Match from PCSM data=%s", body)
        try:
            match = PCSMMatch.from_dict(json.loads(body))
        except ValueError as exc:
            self._log.warning("Error decoding match from PCSM error=%s data=%s", exc, body)
            return Response(status=400)

        err = self._insert_map(match.to_tlm())
        if err is not None:
            self._log.warning("Error inserting on-demand match error=%s", err)
            return Response(status=400)

        self._log.info("Remapped field from PCSM match=%d", match.number)
        for fld in match.fields:
            for team in fld.teams:
                self._log.info(
                    "Team Location Change field=%d quadrant=%s number=%d team=%s",
                    fld.number,
                    team.quadrant,
                    team.number,
                    team.name,
                )
        return Response(status=200)

    def _current_team_map(self) -> Response:
        mapping = self.tlm.get_current_mapping()
        return _json_response({str(team): mapping[team] for team in sorted(mapping, key=str)})

    def _prom_sd(self) -> Response:
        mapping = self.tlm.get_current_mapping()
        targets = [
            f"10.{_tdiv(team, 100)}.{_tmod(team, 100)}.2:8080" for team in sorted(mapping)
        ]
        return _json_response([{"targets": targets}])