from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from lessonmatch.config import settings
from lessonmatch.db.database import init_db, close_db
from lessonmatch.middleware.auth import AuthMiddleware

# CORS: CORS_ORIGINS (comma-separated) or local defaults.
if settings.cors_origins:
    _allowed_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
else:
    _allowed_origins = [
        "http://localhost:8000",
        "http://127.0.0.1:8000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    yield
    await close_db()


app = FastAPI(title="Lesson Match", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)
app.add_middleware(AuthMiddleware)

# Import and register routes
from lessonmatch.routes.availability import router as availability_router
from lessonmatch.routes.matching import router as matching_router
from lessonmatch.routes.lessons import router as lessons_router
from lessonmatch.routes.goals import router as goals_router

app.include_router(availability_router)
app.include_router(matching_router)
app.include_router(lessons_router)
app.include_router(goals_router)


@app.get("/health")
async def health_check():
    return {"status": "ok"}
