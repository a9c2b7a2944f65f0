"""FastAPI entrypoint for the school LMS exam & grade backend."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import HTTPException, RequestValidationError
from fastapi.responses import JSONResponse
from sqlmodel import Session, select
from starlette.middleware.sessions import SessionMiddleware

from school_lms.auth_utils import hash_password
from school_lms.config import settings
from school_lms.database import create_db_and_tables, engine
from school_lms.exceptions import ServiceError
from school_lms.models import User
from school_lms.routers import auth as auth_router_module
from school_lms.routers import courses as courses_router_module
from school_lms.routers import exams as exams_router_module
from school_lms.routers import grades as grades_router_module
from school_lms.routers import student_exams as student_exams_router_module
from school_lms.routers import student_grades as student_grades_router_module

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="School LMS")


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    """Map a service-layer error kind to its HTTP status."""
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
    else:
        logger.debug("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = {}
    for error in exc.errors():
        field_path = error.get("loc", [])
        field_name = str(field_path[-1]) if field_path else "body"
        if error.get("type") == "missing":
            errors[field_name] = f"{field_name.replace('_', ' ').capitalize()} is required."
        else:
            errors[field_name] = error.get("msg", "Invalid input")
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"detail": errors})


# Session middleware for simple cookie-based authentication
app.add_middleware(SessionMiddleware, secret_key=settings.secret_key)

# Routers
app.include_router(auth_router_module.router, prefix="/auth", tags=["auth"])
app.include_router(courses_router_module.router, prefix="/courses", tags=["courses"])
app.include_router(exams_router_module.router, prefix="/exams", tags=["exams"])
app.include_router(grades_router_module.router, prefix="/grades", tags=["grades"])
app.include_router(student_exams_router_module.router, prefix="/students", tags=["student"])
app.include_router(student_grades_router_module.router, prefix="/students", tags=["student"])


@app.get("/health")
def health_check() -> dict:
    return {"status": "ok"}


def seed_admin() -> None:
    """Create the default admin account if no admin exists yet."""
    with Session(engine) as session:
        existing_admin = session.exec(select(User).where(User.role == "admin")).first()
        if existing_admin:
            return
        admin_user = User(
            name="System Admin",
            email=settings.admin_email,
            password_hash=hash_password(settings.admin_password),
            role="admin",
        )
        session.add(admin_user)
        session.commit()
        logger.info("Seeded default admin user: %s", settings.admin_email)


@app.on_event("startup")
def on_startup():
    """Initialize database schema and the default admin."""
    create_db_and_tables()
    if settings.seed_admin:
        seed_admin()
