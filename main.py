from fastapi import FastAPI, HTTPException, Request, Depends, status
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
import logging
import structlog
import sys
import time
from contextlib import asynccontextmanager

from config import Settings, get_settings
from exceptions import (
    AccountNotFoundError,
    DuplicateAccountError,
    InsufficientBalanceError,
    InvalidTransferError,
    LedgerError,
    TransferTimeoutError,
)
from models import (
    Account,
    AccountCreateRequest,
    AccountResponse,
    ErrorResponse,
    HealthResponse,
    TransferRequest,
    TransferResponse,
)
from notifications import get_notification_service
from repositories import get_account_repository
from services import AccountService, get_account_service


def configure_logging(settings: Settings) -> None:
    """Route structlog through stdlib logging at the configured level."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=settings.log_level.upper(),
    )

    if settings.log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


settings = get_settings()
configure_logging(settings)

logger = structlog.get_logger()

# Rate limiting
limiter = Limiter(key_func=get_remote_address)


def rate_limit() -> str:
    return f"{get_settings().rate_limit_per_minute}/minute"


# Application lifespan
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Accounts Transfer API", version=settings.app_version)
    yield
    logger.info("Shutting down Accounts Transfer API")

# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="In-memory accounts with concurrent, deadlock-free fund transfers",
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# Add rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=settings.allowed_methods,
    allow_headers=settings.allowed_headers,
)

# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()

    logger.info(
        "Request started",
        method=request.method,
        url=str(request.url),
        client_ip=request.client.host if request.client else None
    )

    response = await call_next(request)

    process_time = time.time() - start_time
    logger.info(
        "Request completed",
        method=request.method,
        url=str(request.url),
        status_code=response.status_code,
        process_time=round(process_time, 4)
    )

    return response

# Dependency injection
def get_service(
    account_repo=Depends(get_account_repository),
    notification_service=Depends(get_notification_service)
) -> AccountService:
    return get_account_service(
        account_repo,
        notification_service,
        timezone=settings.timezone,
        lock_timeout=settings.transfer_lock_timeout_seconds
    )

# Health check endpoint
@app.get(
    "/health",
    response_model=HealthResponse,
    summary="Health Check",
    description="Check API health and get system statistics"
)
async def health_check(account_repo=Depends(get_account_repository)):
    try:
        accounts_count = await account_repo.get_accounts_count()
        return HealthResponse(status="healthy", accounts_count=accounts_count)
    except Exception as e:
        logger.error("Health check failed", error=str(e))
        raise HTTPException(
            status_code=500,
            detail="Health check failed"
        )

@app.post(
    "/v1/accounts",
    response_model=AccountResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Account",
    responses={
        201: {"description": "Account created"},
        400: {"description": "Account id already exists"},
        422: {"description": "Validation error"},
        429: {"description": "Rate limit exceeded"}
    }
)
@limiter.limit(rate_limit)
async def create_account(
    request: Request,
    account_request: AccountCreateRequest,
    service: AccountService = Depends(get_service)
):
    account = await service.create_account(
        Account(account_id=account_request.accountId, balance=account_request.balance)
    )
    return AccountResponse.from_account(account)

@app.get(
    "/v1/accounts/{account_id}",
    response_model=AccountResponse,
    summary="Get Account",
    responses={404: {"description": "Account not found"}}
)
async def get_account(account_id: str, service: AccountService = Depends(get_service)):
    account = await service.get_account(account_id)
    return AccountResponse.from_account(account)

@app.post(
    "/v1/accounts/fundTransfer",
    response_model=TransferResponse,
    summary="Transfer Funds",
    description="Atomically move an amount from one account to another",
    responses={
        200: {"description": "Transfer completed"},
        400: {"description": "Same account or insufficient balance"},
        404: {"description": "Account not found"},
        422: {"description": "Validation error"},
        429: {"description": "Rate limit exceeded"},
        503: {"description": "Account busy, transfer timed out"}
    }
)
@limiter.limit(rate_limit)
async def transfer_funds(
    request: Request,
    transfer_request: TransferRequest,
    service: AccountService = Depends(get_service)
):
    logger.info(
        "Transfer request received",
        account_from=transfer_request.accountFrom,
        account_to=transfer_request.accountTo,
        amount=str(transfer_request.amount)
    )

    result = await service.transfer(transfer_request.to_transfer())
    return TransferResponse.from_result(result)

# Exception handlers
LEDGER_ERROR_STATUS = {
    DuplicateAccountError: status.HTTP_400_BAD_REQUEST,
    InvalidTransferError: status.HTTP_400_BAD_REQUEST,
    InsufficientBalanceError: status.HTTP_400_BAD_REQUEST,
    AccountNotFoundError: status.HTTP_404_NOT_FOUND,
    TransferTimeoutError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@app.exception_handler(LedgerError)
async def ledger_exception_handler(request: Request, exc: LedgerError):
    status_code = LEDGER_ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST)
    side = getattr(exc, "side", None)

    logger.warning(
        "Request rejected",
        error_code=exc.error_code,
        detail=exc.message,
        status_code=status_code,
        url=str(request.url)
    )

    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(ErrorResponse(
            detail=exc.message,
            error_code=exc.error_code,
            side=side.value if side else None
        ))
    )

@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(ErrorResponse(
            detail=exc.detail,
            error_code=f"HTTP_{exc.status_code}"
        ))
    )

@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled exception",
        error=str(exc),
        url=str(request.url),
        method=request.method,
        exc_info=True
    )

    return JSONResponse(
        status_code=500,
        content=jsonable_encoder(ErrorResponse(
            detail="Internal server error",
            error_code="INTERNAL_ERROR"
        ))
    )

# Root endpoint
@app.get("/", include_in_schema=False)
async def root():
    return {"message": settings.app_name, "docs": "/docs"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
