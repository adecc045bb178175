import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .db import engine, init_db
from .errors import AppError
from .settings import settings
from .routers import health
from .routers import auth
from .routers import assessment
from .routers import user
from .routers import admin

logging.basicConfig(
	level=settings.log_level.upper(),
	format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("compasses")

API_PREFIX = "/api"

app = FastAPI(title="CompAsses Nurse Competency API")
app.add_middleware(
	CORSMiddleware,
	allow_origins=settings.cors_origins,
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)
app.include_router(health.router, prefix=API_PREFIX)
app.include_router(auth.router, prefix=API_PREFIX)
app.include_router(assessment.router, prefix=API_PREFIX)
app.include_router(user.router, prefix=API_PREFIX)
app.include_router(admin.router, prefix=API_PREFIX)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
	if exc.status_code >= 500:
		logger.error("%s %s failed: %s", request.method, request.url.path, exc.message, exc_info=exc.__cause__)
	return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
	errors = exc.errors()
	if errors:
		first = errors[0]
		field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
		message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
	else:
		message = "Invalid request"
	return JSONResponse(status_code=400, content={"error": message})


@app.on_event("startup")
async def startup_event():
	init_db()


@app.on_event("shutdown")
async def shutdown_event():
	engine.dispose()
	logger.info("Database connections closed")
