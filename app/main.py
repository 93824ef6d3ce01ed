from fastapi import FastAPI
from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from app.api.routes import router
from app.api.partner_routes import router as partner_router
from app.api.company_routes import router as company_router
from app.api.admin_routes import router as admin_router
from app.core.errors import OnboardingError
from app.observability.logging import log
from app.settings import settings
from app.store.redis_conn import redis_ok

app = FastAPI(title="DSA Onboarding API")

# Restricted in prod via env.
origins = [x.strip() for x in settings.CORS_ORIGINS.split(",") if x.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)
app.include_router(partner_router)
app.include_router(company_router)
app.include_router(admin_router)


@app.get("/")
def root():
    return {
        "status": "ok",
        "message": "DSA onboarding API is running. Use /health and /api/applications.",
    }


@app.get("/health")
def health():
    redis_up = redis_ok()
    return {"status": "ok" if redis_up else "degraded", "redis": redis_up}


@app.exception_handler(OnboardingError)
async def onboarding_error_handler(request: Request, exc: OnboardingError):
    if exc.status_code >= 500:
        log(event="request_failed", path=request.url.path, code=exc.code, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content={"success": False, **exc.to_dict()})


@app.exception_handler(Exception)
async def universal_exception_handler(request: Request, exc: Exception):
    log(event="unhandled_error", path=request.url.path, errorType=type(exc).__name__, error=str(exc)[:300])
    return JSONResponse(
        status_code=500,
        content={"success": False, "code": "INTERNAL_ERROR", "message": "Something went wrong. Please try again."},
    )
