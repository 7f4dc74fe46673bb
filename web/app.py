from fastapi import FastAPI, HTTPException
from typing import Optional
import logging
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from condor_stats.database import Database
from condor_stats.reports import StatsService
from condor_stats.thresholds import DEFAULT_LAST_EVENTS, DEFAULT_LEADERBOARD_LIMIT, load_settings
from condor_stats.validation import MemberNotFoundError, ValidationError

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="Legion Condor Stats")
settings = load_settings()
db: Optional[Database] = None


def get_db() -> Database:
    global db
    if db is None:
        db = Database(settings.db_path)
    return db


def _run(label: str, report, *args, **kwargs) -> dict:
    """Run a report and map engine errors onto HTTP status codes."""
    try:
        return report(*args, **kwargs)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail={"error": "Invalid query", "field": e.field, "message": e.message})
    except MemberNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except RuntimeError as e:
        LOGGER.error("%s failed: %s", label, e)
        raise HTTPException(status_code=500, detail=f"Failed to build {label}: {str(e)}")


def _service() -> StatsService:
    return StatsService(get_db(), settings=settings)


@app.get("/api/stats/leaderboard")
async def leaderboard(
    metric: str = "kills",
    period: Optional[str] = None,
    days: Optional[int] = None,
    weekOffset: Optional[int] = None,
    events: Optional[int] = None,
    limit: int = DEFAULT_LEADERBOARD_LIMIT,
) -> dict:
    return _run(
        "leaderboard", _service().leaderboard,
        metric=metric, period=period, days=days, week_offset=weekOffset, events=events, limit=limit,
    )


@app.get("/api/stats/condor")
async def condor_leaderboard(
    metric: str = "kills",
    period: Optional[str] = None,
    days: Optional[int] = None,
    weekOffset: Optional[int] = None,
    limit: int = DEFAULT_LEADERBOARD_LIMIT,
) -> dict:
    return _run(
        "condor leaderboard", _service().condor_leaderboard,
        metric=metric, period=period, days=days, week_offset=weekOffset, limit=limit,
    )


@app.get("/api/stats/weekly")
async def weekly_scores(weekOffset: int = 0, limit: int = DEFAULT_LEADERBOARD_LIMIT) -> dict:
    return _run("weekly scores", _service().weekly_scores, week_offset=weekOffset, limit=limit)


@app.get("/api/stats/myrank/{discord_id}")
async def my_rank(
    discord_id: str,
    period: Optional[str] = None,
    days: Optional[int] = None,
    events: Optional[int] = None,
    weekOffset: Optional[int] = None,
) -> dict:
    return _run(
        "rank card", _service().my_rank,
        discord_id, period=period, days=days, events=events, week_offset=weekOffset,
    )


@app.get("/api/stats/last-events/{discord_id}")
async def last_events(discord_id: str, events: Optional[int] = None, days: Optional[int] = None) -> dict:
    if events is None and days is None:
        events = DEFAULT_LAST_EVENTS
    return _run("last events", _service().last_events, discord_id, events=events, days=days)


@app.get("/api/stats/gulag")
async def gulag(inactivityDays: Optional[int] = None) -> dict:
    return _run("gulag report", _service().gulag, threshold_days=inactivityDays)


@app.get("/api/stats/members-report")
async def members_report() -> dict:
    return _run("members report", _service().members_report)


@app.get("/api/stats/matches")
async def qualified_matches(
    period: Optional[str] = None,
    days: Optional[int] = None,
    weekOffset: Optional[int] = None,
) -> dict:
    return _run(
        "qualified matches", _service().qualified_matches,
        period=period, days=days, week_offset=weekOffset,
    )


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    print("Starting Condor Stats API...")
    print("Open http://localhost:5000/docs in your browser")
    uvicorn.run(app, host="127.0.0.1", port=5000)
