import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from kickoff.database import init_db
from kickoff.routes import results, schedule, teams, tournaments

app = FastAPI(title="Kickoff Fixture Scheduler API")

_cors_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
_extra = os.getenv("CORS_ORIGINS", "")
if _extra:
    _cors_origins.extend(o.strip() for o in _extra.split(",") if o.strip())

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(tournaments.router, prefix="/api", tags=["tournaments"])
app.include_router(teams.router, prefix="/api", tags=["teams"])
app.include_router(schedule.router, prefix="/api", tags=["schedule"])
app.include_router(results.router, prefix="/api", tags=["results"])


@app.on_event("startup")
def on_startup():
    init_db()


@app.get("/api/health")
def health_check():
    return {"app_name": "Kickoff Fixture Scheduler API", "status": "healthy"}
