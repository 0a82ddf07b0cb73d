# main.py
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import uvicorn

from config import settings
from database import client, db, ensure_indexes
from routes import schedule, template
from utils.errors import ScheduleEngineError
from utils.logging_config import setup_logging

setup_logging(settings.log_level)

app = FastAPI(title="Bus Schedule Engine API")

app.include_router(template.router, prefix="/api/templates")
app.include_router(schedule.router, prefix="/api/schedules")

_monitor_stop = None


@app.exception_handler(ScheduleEngineError)
async def schedule_engine_error_handler(request: Request, exc: ScheduleEngineError):
    if exc.http_status >= 500:
        logging.warning(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=exc.http_status, content={"detail": str(exc)})


@app.on_event("startup")
def start_monitor():
    global _monitor_stop
    ensure_indexes(db)
    if settings.monitor_enabled:
        from worker import start_in_background

        _monitor_stop = start_in_background(db)


@app.on_event("shutdown")
def shutdown_db_client():
    if _monitor_stop is not None:
        _monitor_stop.set()
    client.close()

if __name__ == "__main__":
    uvicorn.run("main:app", host="127.0.0.1", port=8000, reload=True)
