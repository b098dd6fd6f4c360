import logging

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from referral_ledger.core.config import settings
from referral_ledger.core.errors import register_exception_handlers
from referral_ledger.routers import api_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json"
)

# Set all CORS enabled origins
if settings.ALLOWED_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(origin).strip() for origin in settings.ALLOWED_ORIGINS],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(api_router, prefix=settings.API_V1_STR)
register_exception_handlers(app)

@app.get("/health", tags=["health"])
def read_root():
    return {"status": "ok"}
