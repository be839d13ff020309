# /shopbot/main.py

import time
import uvicorn
from fastapi import FastAPI, Request

from shopbot.config.settings import settings
from shopbot.utils.lifecycle import lifespan
from shopbot.utils.metrics import response_time_histogram
from shopbot.routes import public, webhooks

# Initialize the FastAPI application
app = FastAPI(
    title="Shop Update Chatbot",
    version="1.0.0",
    description="WhatsApp assistant for listing and adding WooCommerce products",
    lifespan=lifespan,
    openapi_url=f"/api/{settings.api_version}/openapi.json" if settings.environment != "production" else None,
    docs_url=f"/api/{settings.api_version}/docs" if settings.environment != "production" else None,
    redoc_url=None,
)

# --- Middleware ---
@app.middleware("http")
async def performance_middleware(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response_time_histogram.labels(endpoint=request.url.path).observe(process_time)
    response.headers["X-Process-Time"] = str(process_time)
    return response

# --- API Routers ---
app.include_router(public.router)
app.include_router(webhooks.router)

# --- Main Entry Point for Uvicorn (for local development) ---
def run():
    # Sessions and their locks live in this process, so never fork workers.
    uvicorn.run(
        "shopbot.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        workers=1,
    )


if __name__ == "__main__":
    run()
