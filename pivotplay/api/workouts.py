"""Stored workout and heatmap API endpoints."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from pivotplay.core.codec import format_date
from pivotplay.core.errors import DegenerateCornersError
from pivotplay.core.models import WorkoutPayload
from pivotplay.heatmap.pipeline import build_heatmap

router = APIRouter(prefix="/api/v1")


def _workout_summary(workout: WorkoutPayload) -> dict:
    return {
        "workout_id": str(workout.workout_id),
        "start_date": format_date(workout.start_date),
        "duration": workout.duration,
        "total_distance": workout.total_distance,
        "average_heart_rate": round(workout.average_heart_rate, 1),
        "samples": len(workout.track),
        "has_pitch": workout.has_pitch,
    }


@router.get("/workouts")
async def list_workouts(request: Request) -> JSONResponse:
    """Stored sessions, newest first."""
    from pivotplay.main import get_components

    result = get_components(request).store.fetch_all()
    if not result.ok:
        return JSONResponse(content={"error": result.error.message}, status_code=500)
    workouts = [_workout_summary(w) for w in result.value]
    return JSONResponse(content={"count": len(workouts), "workouts": workouts})


@router.delete("/workouts")
async def delete_workouts(request: Request) -> JSONResponse:
    """Delete sessions by id.

    Body: {"workout_ids": ["<uuid>", ...]}
    """
    import json as json_mod

    from pivotplay.main import get_components

    try:
        body = json_mod.loads(await request.body())
        workout_ids = {uuid.UUID(str(w)) for w in body.get("workout_ids", [])}
    except (ValueError, AttributeError):
        return JSONResponse(content={"error": "invalid workout_ids"}, status_code=400)
    if not workout_ids:
        return JSONResponse(content={"deleted": 0})

    result = get_components(request).store.delete(workout_ids)
    if not result.ok:
        return JSONResponse(content={"error": result.error.message}, status_code=500)
    return JSONResponse(content={"deleted": result.value})


@router.get("/workouts/{workout_id}/heatmap")
async def get_heatmap(workout_id: uuid.UUID, request: Request) -> JSONResponse:
    """Normalized occupancy grid and palette for one session.

    Legacy sessions recorded without pitch corners answer 409 with
    ``"legacy": true``.
    """
    from pivotplay.main import get_components

    components = get_components(request)
    result = components.store.fetch(workout_id)
    if not result.ok:
        return JSONResponse(content={"error": result.error.message}, status_code=404)

    workout = result.value
    if not workout.has_pitch:
        return JSONResponse(
            content={"workout_id": str(workout_id), "legacy": True,
                     "error": "session has no pitch corners"},
            status_code=409,
        )

    cfg = components.config.heatmap
    try:
        heatmap = build_heatmap(
            workout,
            grid_size=(cfg.grid_width, cfg.grid_height),
            palette_size=cfg.palette_size,
        )
    except DegenerateCornersError as exc:
        return JSONResponse(
            content={"workout_id": str(workout_id), "legacy": False, "error": exc.message},
            status_code=422,
        )

    content = {"workout_id": str(workout_id), "legacy": False}
    content.update(heatmap.to_dict())
    return JSONResponse(content=content)
