import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .settings import get_settings
from .db import init_db, reset_db
from .errors import register_error_handlers
from .services.completion import router as completion_router
from .services.debug import router as debug_router
from .services.roster import router as roster_router
from .services.sets import router as sets_router
from .services.workouts import router as workouts_router

settings = get_settings()
logging.basicConfig(level=settings.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Coachboard")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
register_error_handlers(app)

# completion routes first: /workouts/completions must not be read as a workout id
app.include_router(completion_router, prefix="/api")
app.include_router(sets_router, prefix="/api")
app.include_router(workouts_router, prefix="/api")
app.include_router(roster_router, prefix="/api")
app.include_router(debug_router, prefix="/api")


@app.get("/healthz")
async def healthz():
    return {"status": "ok"}


@app.on_event("startup")
async def on_startup() -> None:
    await init_db()
    logger.info("[coachboard] startup: database ready")


@app.post("/reset-db")
async def reset(confirm: bool = False):
    if not confirm:
        return {"reset": False, "hint": "pass confirm=true"}
    await reset_db()
    logger.warning("[coachboard] admin: database reset")
    return {"reset": True}
