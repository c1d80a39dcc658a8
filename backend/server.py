from fastapi import FastAPI, APIRouter, Request, status
from fastapi.responses import JSONResponse
from dotenv import load_dotenv
from starlette.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError
import os
import logging
from pathlib import Path

from database import engine, Base
from errors import RegistrationError
from routers import admin, attendance, catalog, directory, payments, registrations

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# Create tables
Base.metadata.create_all(bind=engine)

app = FastAPI(title="Event Registration API", version="1.0.0")
api_router = APIRouter(prefix="/api")

# Configure logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

APP_ENV = os.environ.get('APP_ENV', 'production').strip().lower()


@app.exception_handler(RegistrationError)
async def registration_error_handler(request: Request, exc: RegistrationError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "retryable": exc.retryable},
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    detail = str(exc) if APP_ENV == "development" else "Internal server error"
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": detail, "retryable": False},
    )


# ==================== PUBLIC ROUTES ====================
@api_router.get("/")
async def root():
    return {"message": "Event Registration API is running"}


@api_router.get("/health")
async def health_check():
    return {"status": "healthy"}


api_router.include_router(registrations.router)
api_router.include_router(payments.router)
api_router.include_router(catalog.router)
api_router.include_router(admin.router)
api_router.include_router(attendance.router)
api_router.include_router(directory.router)

# Include router and add middleware
app.include_router(api_router)

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=os.environ.get('CORS_ORIGINS', '*').split(','),
    allow_methods=["*"],
    allow_headers=["*"],
)
