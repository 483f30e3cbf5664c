import logging
import uvicorn
from fastapi import FastAPI
from .routers import analytics, payments, settings as settings_router, webhooks
from .db import init_db
from .config import settings
from fastapi.middleware.cors import CORSMiddleware

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="CloserPay Webhook Service")

# CORS - allow the dashboard domain(s)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # change to your dashboard domains in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(webhooks.router)
app.include_router(payments.router)
app.include_router(analytics.router)
app.include_router(settings_router.router)

@app.on_event("startup")
async def on_startup():
    # init db tables if not using migrations
    await init_db()

if __name__ == "__main__":
    uvicorn.run("closerpay.main:app", host=settings.app_host, port=settings.app_port, reload=(settings.env != "production"))
