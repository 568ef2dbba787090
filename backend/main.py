from fastapi import FastAPI, Request
from api import auth
from api import history
from core.config import settings
from core.database import database
from core.errors import register_exception_handlers
from fastapi.middleware.cors import CORSMiddleware
from utils.logger import init_logging, get_logger, request_id
import uuid

# Initialize logging
init_logging()
logger = get_logger("backend.main")

app = FastAPI(
    title=settings.app_name
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Request ID middleware for request tracing
@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    token = request_id.set(uuid.uuid4().hex[:8])
    logger.info("Request started", extra={
        "method": request.method,
        "path": request.url.path,
    })
    try:
        response = await call_next(request)
        logger.info("Request completed", extra={
            "status_code": response.status_code,
        })
        return response
    finally:
        request_id.reset(token)

# Routes
app.include_router(auth.router)
app.include_router(history.router)

@app.on_event("startup")
async def startup_event():
    await database.init_schema()
    logger.info("Backend server started")

@app.on_event("shutdown")
async def shutdown_event():
    await database.dispose()
    logger.info("Backend server shutting down")
