from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from app.api import admin, member
from app.core.config import settings
from app.core.exceptions import LedgerError, InfrastructureError
import logging

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)

# Get logger for this module
logger = logging.getLogger(__name__)
logger.info("Starting Cooperative Ledger API")


app = FastAPI(
    title="Cooperative Ledger API",
    description="Member contributions, interest-free loans and special savings withdrawals",
    version="1.0.0",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    """Render refused financial actions as {"error": code, "message": ..., **details}."""
    if isinstance(exc, InfrastructureError):
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} refused: {exc.code}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Include routers
app.include_router(admin.router)
app.include_router(member.router)


@app.get("/")
def root():
    """Root endpoint."""
    return {"message": "Cooperative Ledger API", "version": "1.0.0"}


@app.get("/api/health")
def health_check():
    """Health check endpoint: checks API and database connectivity."""
    from app.db.base import get_db
    from sqlalchemy import text
    from datetime import datetime, timezone

    db_status = "unreachable"
    db_error = None
    db_gen = get_db()
    try:
        db = next(db_gen)
        db.execute(text("SELECT 1"))
        db_status = "connected"
    except Exception as e:
        db_error = str(e)
    finally:
        db_gen.close()

    status = "healthy" if db_status == "connected" else "degraded"

    return {
        "status": status,
        "version": "1.0.0",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "services": {
            "api": "ok",
            "database": db_status,
        },
        **({"database_error": db_error} if db_error else {})
    }
