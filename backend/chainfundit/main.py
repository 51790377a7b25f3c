from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from chainfundit.config import settings
from chainfundit.core.log_config import configure_logging
from chainfundit.routers import auth, payouts, admin, cron, banks, currency
from chainfundit.services.notifications import dispatch_pending_notifications
from chainfundit.services.payout_sweeper import sweep_failed_payouts_job

configure_logging(settings.LOG_LEVEL)

scheduler = AsyncIOScheduler()

@asynccontextmanager
async def lifespan(app: FastAPI):
    # max_instances=1 keeps a slow sweep from overlapping the next one
    scheduler.add_job(
        sweep_failed_payouts_job, "interval",
        minutes=settings.PAYOUT_SWEEP_INTERVAL_MINUTES, max_instances=1, coalesce=True,
    )
    scheduler.add_job(
        dispatch_pending_notifications, "interval",
        seconds=settings.NOTIFICATION_DISPATCH_INTERVAL_SECONDS, max_instances=1, coalesce=True,
    )
    scheduler.start()
    yield
    scheduler.shutdown()

app = FastAPI(title="ChainFundIt Payouts API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(payouts.router)
app.include_router(admin.router)
app.include_router(cron.router)
app.include_router(banks.router)
app.include_router(currency.router)

@app.get("/health")
async def health():
    return {"status": "ok"}
