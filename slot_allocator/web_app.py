from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

from flask import Flask, jsonify, request

from .allocator import SelectionStrategy
from .availability import FORM_FLAG
from .errors import AllocationError
from .service import ReservationService
from .settings import AllocationSettings, load_settings
from .validation import normalize_fields

ACTOR_HEADER = "X-Actor-Id"


def create_app(
    data_dir: str | Path | None = None,
    now_provider: Callable[[], datetime] | None = None,
    settings: AllocationSettings | None = None,
    selection: SelectionStrategy | None = None,
) -> Flask:
    app = Flask(__name__)
    effective_settings = settings or load_settings()
    if data_dir is not None:
        effective_settings = replace(effective_settings, data_dir=str(data_dir))
    service = ReservationService.from_settings(effective_settings, selection=selection, clock=now_provider)
    app.extensions["reservation_service"] = service

    def _actor_id() -> str | None:
        value = request.headers.get(ACTOR_HEADER, "").strip()
        return value or None

    def _query_fields() -> dict[str, Any]:
        return normalize_fields(request.args.to_dict())

    @app.errorhandler(AllocationError)
    def handle_allocation_error(error: AllocationError) -> Any:
        return jsonify(error.to_dict()), error.status_code

    @app.after_request
    def add_cors_headers(response: Any) -> Any:
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Methods"] = "GET,POST,DELETE,OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = f"Content-Type,{ACTOR_HEADER}"
        return response

    @app.post("/api/v1/bookings")
    def create_booking() -> Any:
        payload = request.get_json(silent=True) or {}
        if not isinstance(payload, dict):
            payload = {}
        view = service.create_reservation(payload, actor_id=_actor_id())
        return jsonify({"ok": True, "reservation": view.to_dict()}), 201

    @app.get("/api/v1/bookings/available-slots")
    def available_slots() -> Any:
        fields = _query_fields()
        rows = service.get_available_slots(
            fields.get("venueId", ""),
            fields.get("activityId", ""),
            fields.get("date", ""),
            form=request.args.get("form", FORM_FLAG),
        )
        return jsonify({"ok": True, "slots": [row.to_dict() for row in rows]})

    @app.get("/api/v1/bookings")
    def list_bookings() -> Any:
        fields = _query_fields()
        views = service.list_reservations(fields.get("venueId", ""), fields.get("activityId", ""), fields.get("date", ""))
        return jsonify({"ok": True, "reservations": [view.to_dict() for view in views]})

    @app.delete("/api/v1/bookings/<reservation_id>")
    def cancel_booking(reservation_id: str) -> Any:
        view = service.cancel_reservation(reservation_id)
        return jsonify({"ok": True, "reservation": view.to_dict()})

    @app.get("/api/v1/users/<actor_id>/bookings")
    def actor_bookings(actor_id: str) -> Any:
        views = service.list_actor_reservations(actor_id)
        return jsonify({"ok": True, "reservations": [view.to_dict() for view in views]})

    @app.get("/api/v1/resources")
    def list_resources() -> Any:
        fields = _query_fields()
        pool = service.list_resource_pool(fields.get("venueId", ""), fields.get("activityId", ""))
        return jsonify(
            {
                "ok": True,
                "resources": [
                    {"id": resource.resource_id, "name": resource.name, "venueId": resource.venue_id, "activityId": resource.activity_id}
                    for resource in pool
                ],
            }
        )

    return app


if __name__ == "__main__":
    app = create_app()
    app.run(host="127.0.0.1", port=5000, debug=False)
