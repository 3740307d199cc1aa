from __future__ import annotations

from fastapi import Body, FastAPI, Form, Request
from fastapi.responses import JSONResponse

from ironquest import atrophy, db, quests, rewards
from ironquest.progression import CHARACTER_CURVE, STAT_CURVE, STAT_FIELDS, get_progress

app = FastAPI(title="IronQuest")


@app.on_event("startup")
def startup() -> None:
    db.init_db()


@app.exception_handler(db.UserNotFoundError)
async def user_not_found(request: Request, exc: db.UserNotFoundError) -> JSONResponse:
    return JSONResponse({"error": str(exc)}, status_code=404)


@app.exception_handler(ValueError)
async def bad_request(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse({"error": str(exc)}, status_code=400)


def _require_user(user_id: int) -> dict:
    user = db.get_user(user_id)
    if user is None:
        raise db.UserNotFoundError(user_id)
    return user


@app.get("/api/health")
def health() -> dict:
    return {"status": "ok"}


@app.post("/api/users")
def create_user(
    username: str = Form(...),
    timezone: str = Form(""),
    bodyweight_lbs: float = Form(0.0),
) -> JSONResponse:
    user = db.create_user(username, timezone, bodyweight_lbs)
    atrophy.grant_new_user_immunity(user["id"])
    return JSONResponse(db.get_user(user["id"]), status_code=201)


@app.get("/api/users/{user_id}/progress")
def progress(user_id: int) -> dict:
    user = _require_user(user_id)
    return {
        "user": user,
        "character": get_progress(user["experience"], CHARACTER_CURVE),
        "stats": {level_key: get_progress(user[xp_key], STAT_CURVE) for xp_key, level_key in STAT_FIELDS.items()},
        "atrophy": atrophy.get_user_atrophy_status(user_id),
        "events": db.get_events(user_id),
    }


@app.post("/api/users/{user_id}/workouts")
def complete_workout(user_id: int, payload: dict = Body(...)) -> dict:
    return rewards.complete_workout_session(
        user_id,
        payload.get("exercises") or [],
        float(payload.get("duration", 0)),
        float(payload.get("rpe", 0)),
        bodyweight=float(payload["bodyweight"]) if payload.get("bodyweight") is not None else None,
        name=payload.get("name"),
    )


@app.get("/api/users/{user_id}/daily-quests")
def daily_quests(user_id: int) -> dict:
    return quests.get_daily_progress(user_id)


@app.post("/api/users/{user_id}/daily-quests/toggle")
def toggle_daily_quest(user_id: int, quest_type: str = Form(...), completed: bool = Form(...)) -> dict:
    return quests.toggle_daily_quest(user_id, quest_type, completed)


@app.post("/api/users/{user_id}/streak-freeze")
def streak_freeze(user_id: int) -> dict:
    return atrophy.use_streak_freeze(user_id)


@app.get("/api/users/{user_id}/atrophy")
def atrophy_status(user_id: int) -> dict:
    return atrophy.get_user_atrophy_status(user_id)


@app.post("/api/atrophy/run")
def run_atrophy() -> dict:
    return atrophy.process_atrophy()
