import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from marketplace.core import config
from marketplace.core.errors import register_exception_handlers
from marketplace.core.logging_config import setup_logging

# ✅ Import All API Routes
from marketplace.api.routes import (
    admin,
    applications,
    auth,
    blog,
    businesses,
    categories,
    health,
    identity_webhook,
    jobs,
    payments,
    professionals,
    reviews,
    users,
)

setup_logging(config.LOG_LEVEL, config.LOG_DIR)
logger = logging.getLogger(__name__)


# ============================================
# ✅ FASTAPI APP INIT
# ============================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    if config.RUN_MIGRATIONS:
        from marketplace.db.migrate import run_migrations
        run_migrations()
    yield


app = FastAPI(title="Marketplace API", version="1.0.0", lifespan=lifespan)

# ✅ CORS: only the configured frontends
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Authorization", "Content-Type"],
)

register_exception_handlers(app)


# ============================================
# ✅ REGISTER ALL ROUTERS
# ============================================

app.include_router(health.router)
app.include_router(auth.router)
app.include_router(users.router)
app.include_router(categories.router)
app.include_router(businesses.router)
app.include_router(professionals.router)
app.include_router(jobs.router)
app.include_router(applications.router)
app.include_router(blog.router)
app.include_router(reviews.router)
app.include_router(payments.router)
app.include_router(identity_webhook.router)
app.include_router(admin.router)


@app.get("/")
def root():
    return {"status": "Marketplace API running"}
