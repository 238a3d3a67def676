from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Any, Callable

from mcp.server.fastmcp import FastMCP

from slot_allocator import AllocationError, ReservationService, load_settings

mcp = FastMCP(
    "Slot Allocator MCP Server",
    instructions="Check court and equipment availability and book hourly slots at venues.",
    json_response=True,
)

DATA_DIR = Path(__file__).parent / "data"
SERVICE = ReservationService.from_settings(replace(load_settings(), data_dir=str(DATA_DIR)))


def _respond(build: Callable[[], dict[str, Any]]) -> dict[str, Any]:
    """Wrap a tool result as ``{"ok": True, ...}``, or an allocation error as its error body."""
    try:
        return {"ok": True, **build()}
    except AllocationError as error:
        return error.to_dict()


@mcp.tool()
def list_resources(venue_id: str, activity_id: str) -> dict[str, Any]:
    """List the resources that can be booked for a venue and activity."""
    return _respond(
        lambda: {
            "resources": [
                {"id": resource.resource_id, "name": resource.name}
                for resource in SERVICE.list_resource_pool(venue_id, activity_id)
            ]
        }
    )


@mcp.tool()
def available_slots(venue_id: str, activity_id: str, date: str, only_free: bool = False) -> dict[str, Any]:
    """Return per-hour free resource counts for one day (date as YYYY-MM-DD)."""
    form = "list" if only_free else "flag"
    return _respond(
        lambda: {"slots": [row.to_dict() for row in SERVICE.get_available_slots(venue_id, activity_id, date, form=form)]}
    )


@mcp.tool()
def create_reservation(
    venue_id: str,
    activity_id: str,
    date: str,
    start_time: str,
    end_time: str,
    status: str = "Booking",
    resource_id: str | None = None,
    remarks: str = "",
) -> dict[str, Any]:
    """Book a slot; times are HH:00. Leave resource_id empty to have one assigned."""
    payload = {
        "venueId": venue_id,
        "activityId": activity_id,
        "date": date,
        "startHour": start_time,
        "endHour": end_time,
        "status": status,
        "resourceId": resource_id,
        "remarks": remarks,
    }
    return _respond(lambda: {"reservation": SERVICE.create_reservation(payload).to_dict()})


def main() -> None:
    mcp.run()


if __name__ == "__main__":
    main()
