from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.auth.permissions import AccessDenied
from app.config import settings
from app.db.auth import init_auth_tables
from app.db.leads import init_leads_tables
from app.db.profiles import init_profiles_tables
from app.db.questions import init_questions_table
from app.models.contact import ContactValidationError
from app.routes import auth, health, leads, metrics, questions, users, wizard
from app.utils.logger import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    # leads reference profiles, so order matters
    init_auth_tables()
    init_profiles_tables()
    init_leads_tables()
    init_questions_table()
    logger.info("Database schema ready")
    yield


app = FastAPI(title="Care Leads API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ContactValidationError)
async def contact_validation_handler(_: Request, exc: ContactValidationError):
    return JSONResponse(status_code=422, content=exc.as_dict())


@app.exception_handler(AccessDenied)
async def access_denied_handler(request: Request, exc: AccessDenied):
    logger.info("Denied %s on %s %s", exc.action.value, request.method, request.url.path)
    return JSONResponse(
        status_code=403,
        content={"detail": exc.reason, "action": exc.action.value},
    )


app.include_router(health.router)
app.include_router(auth.router)
app.include_router(wizard.router)
app.include_router(leads.router)
app.include_router(metrics.router)
app.include_router(users.router)
app.include_router(users.settings_router)
app.include_router(questions.router)
