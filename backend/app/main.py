from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from app.api import projects, executions, test_suites, bugs
from app.exceptions import FeatureforgeException, exception_to_response
from app.logging_config import logger
from app.config import settings
from app.models import init_db

@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield

app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(FeatureforgeException)
async def featureforge_exception_handler(request: Request, exc: FeatureforgeException):
    logger.warning(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=exc.status_code, content=exception_to_response(exc))

app.include_router(projects.router)
app.include_router(executions.router)
app.include_router(executions.summary_router)
app.include_router(test_suites.router)
app.include_router(bugs.router)

@app.get("/health")
def health():
    return {"status": "ok"}
