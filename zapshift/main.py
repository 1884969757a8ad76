import logging
import logging.config
from contextlib import asynccontextmanager

import stripe
import uvicorn
from fastapi import Depends, FastAPI, Request, Header, HTTPException
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from zapshift.config import settings
from zapshift.database import Base, engine
from zapshift.errors import ZapShiftError
from zapshift.reconciliation import PaymentReconciler
from zapshift.repository import Repository
from zapshift.routes import get_gateway, get_repository, router
from zapshift.stripe_service import StripeGateway, configure_stripe

logging.config.dictConfig({
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {"format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "default"},
    },
    "loggers": {
        "zapshift": {"handlers": ["console"], "level": settings.log_level, "propagate": False},
    },
})
logger = logging.getLogger("zapshift")


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_stripe()
    Base.metadata.create_all(bind=engine)
    logger.info("ZapShift API started")
    yield


app = FastAPI(title="ZapShift Parcel Service", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


@app.exception_handler(ZapShiftError)
async def zapshift_error_handler(request: Request, exc: ZapShiftError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"message": "Internal server error"})


@app.get("/", response_class=PlainTextResponse)
def root():
    return "ZapShift server running"


@app.post("/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(None),
    repo: Repository = Depends(get_repository),
    gateway: StripeGateway = Depends(get_gateway),
):
    payload = await request.body()

    try:
        event = gateway.construct_event(payload, stripe_signature)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid payload")
    except stripe.error.SignatureVerificationError:
        raise HTTPException(status_code=400, detail="Invalid signature")

    if event.type == "checkout.session.completed":
        session_id = event.data.object.id
        result = await run_in_threadpool(PaymentReconciler(repo, gateway).reconcile, session_id)
        logger.info(f"Webhook reconciled session {session_id}: {result.get('success', result.get('message'))}")

    return {"ok": True}


if __name__ == "__main__":
    uvicorn.run("zapshift.main:app", host="0.0.0.0", port=settings.port)
