import logging
import os
import socket
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from roomreport.api.router import api_router
from roomreport.core.config import settings
from roomreport.services.seed import seed_defaults
from roomreport.shared.db.database import Session_Local, create_db_and_tables

# Logging setup so errors are easy to spot
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

WIFI_INTERFACE_HINTS = ("wi-fi", "wlan", "wlp", "en0")


@asynccontextmanager
async def lifespan(app: FastAPI):
    create_db_and_tables()
    os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
    if settings.SEED_DEFAULTS:
        db = Session_Local()
        try:
            seed_defaults(db)
        finally:
            db.close()
    logger.info("FastAPI application startup complete.")
    yield


# Create the FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description="API for Room Report: record, upload and manage room videos.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "HEAD"],
    allow_headers=[
        "Origin",
        "Content-Type",
        "Accept",
        "Authorization",
        "X-Requested-With",
        "Range",
        "Content-Range",
        "Accept-Ranges",
        "Content-Length",
    ],
    expose_headers=["Content-Length", "Content-Range", "Accept-Ranges", "Content-Type"],
)

app.include_router(api_router, prefix=settings.API_PREFIX)


# Malformed bodies are reported as a plain 400
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.info(f"Invalid request data for {request.method} {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=400, content={"detail": "Invalid request data"})


# Catch everything else
@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    logger.error(f"An unhandled exception occurred: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "An internal server error occurred."},
    )


@app.get("/")
def read_root():
    logger.info("Root endpoint was called.")
    return {"message": "Welcome to Room Report API! The server is running."}


@app.get("/health")
def health_check():
    return {"status": "ok"}


def get_local_ip() -> str:
    """
    Best guess at the address other devices on the network can reach.
    Prefers Wi-Fi interfaces, then any non-loopback IPv4 address.
    """
    candidates = []
    try:
        for _, name in socket.if_nameindex():
            address = _interface_ipv4(name)
            if address and not address.startswith("127."):
                candidates.append((name, address))
    except (OSError, AttributeError):
        pass

    for name, address in candidates:
        if any(hint in name.lower() for hint in WIFI_INTERFACE_HINTS):
            return address
    if candidates:
        return candidates[0][1]

    # No per-interface lookup available; ask the routing table instead
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            s.connect(("10.255.255.255", 1))
            address = s.getsockname()[0]
            if not address.startswith("127."):
                return address
    except OSError:
        pass
    return "localhost"


def _interface_ipv4(name: str) -> str | None:
    try:
        import fcntl
        import struct
    except ImportError:
        return None
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
        try:
            packed = fcntl.ioctl(s.fileno(), 0x8915, struct.pack("256s", name[:15].encode()))  # SIOCGIFADDR
        except OSError:
            return None
    return socket.inet_ntoa(packed[20:24])


def run():
    cert_file = os.path.join(settings.CERT_DIR, "localhost.pem")
    key_file = os.path.join(settings.CERT_DIR, "localhost-key.pem")
    use_https = os.path.isfile(cert_file) and os.path.isfile(key_file)
    scheme = "https" if use_https else "http"

    logger.info(f"Server starting on {settings.HOST}:{settings.PORT}")
    logger.info(f"Health check available at {scheme}://{get_local_ip()}:{settings.PORT}/health")

    ssl_options = {}
    if use_https:
        logger.info("HTTPS certificates found, starting HTTPS server")
        ssl_options = {"ssl_certfile": cert_file, "ssl_keyfile": key_file}

    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_level=settings.LOG_LEVEL.lower(), **ssl_options)


if __name__ == "__main__":
    run()
