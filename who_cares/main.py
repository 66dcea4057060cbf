from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core.config import get_settings
from .core.logging import configure_logging
from .api.routes_batch import router as batch_router

settings = get_settings()
configure_logging(settings.LOG_LEVEL.upper())

app = FastAPI(title="WHO CARES Relationship Engine API")

# CORS:
# - In prod, FRONTEND_ORIGIN is required and we never fall back to "*".
# - In non-prod, an explicit FRONTEND_ORIGIN list wins unless
#   CORS_ALLOW_ALL_ORIGINS=True; with neither set, any origin is allowed.
if settings.ENV.lower() == "prod":
    if not settings.FRONTEND_ORIGIN:
        raise RuntimeError(
            "FRONTEND_ORIGIN must be set in production – refusing to start with wide-open CORS."
        )
    origins = [o.strip() for o in settings.FRONTEND_ORIGIN.split(",") if o.strip()]
elif settings.CORS_ALLOW_ALL_ORIGINS or not settings.FRONTEND_ORIGIN:
    origins = ["*"]
else:
    origins = [o.strip() for o in settings.FRONTEND_ORIGIN.split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    allow_credentials=False,
)

app.include_router(batch_router, prefix=settings.API_PREFIX)
