import os
import logfire

from logging import basicConfig, INFO

from dotenv import load_dotenv

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from contextlib import asynccontextmanager

from middleware.rate_limiting import RateLimitMiddleware

from controllers.cloudinary import read_store_settings, find_missing_settings

from routers import upload, health

from utils.exceptions import setup_exception_handlers
from utils.logger import logger, instrument_libraries


# Load environment variables first
load_dotenv()

basicConfig(level=INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

# Configure logfire BEFORE creating FastAPI app
logfire.configure(token=os.getenv("LOGFIRE_WRITE_TOKEN"))
instrument_libraries()

CLIENT_URL = os.getenv("CLIENT_URL", "http://localhost:5173")
TRUSTED_PROXIES = [
    host.strip() for host in os.getenv("TRUSTED_PROXIES", "127.0.0.1").split(",") if host.strip()
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    logfire.info("Starting chat upload service...")
    logger.info(f"Environment: {os.getenv('ENVIRONMENT', 'development')}")

    # Only reports, credentials are resolved on the first upload
    missing = find_missing_settings(read_store_settings())
    if missing:
        logfire.warn(f"Cloudinary not configured. Image uploads will fail. Missing: {missing}")
    else:
        logfire.info("Cloudinary configured")

    yield

    logfire.info("Chat upload service shut down")


app = FastAPI(
    title="Chat Uploads API",
    description="Image uploads for the chat application, stored on Cloudinary.",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[CLIENT_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(GZipMiddleware, minimum_size=500)
app.add_middleware(
    RateLimitMiddleware,
    max_requests=100,  # 100 requests per client
    window_seconds=15 * 60,  # every 15 minutes
    path_prefixes=["/api/"],
    trusted_proxies=TRUSTED_PROXIES,
)

setup_exception_handlers(app)

app.include_router(health.router)
app.include_router(upload.router)
