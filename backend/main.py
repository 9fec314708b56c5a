import logging

import psycopg2
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

try:
    from backend import app_context
    from backend.app.config import load_database_config, load_http_config
    from backend.app.routes.billing import router as billing_router
    from backend.app.routes.handbooks import router as handbooks_router
except ModuleNotFoundError as exc:
    if exc.name != "backend":
        raise
    import app_context  # type: ignore[no-redef]
    from app.config import load_database_config, load_http_config  # type: ignore[no-redef]
    from app.routes.billing import router as billing_router  # type: ignore[no-redef]
    from app.routes.handbooks import router as handbooks_router  # type: ignore[no-redef]


load_dotenv()

HTTP_CFG = load_http_config()
DB_CFG = load_database_config()

logging.basicConfig(
    level=getattr(logging, HTTP_CFG.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("handbooks_api")


def get_conn():
    return psycopg2.connect(**DB_CFG.as_connect_kwargs())


app_context.configure(get_conn=get_conn)

app = FastAPI(title="Handbook Builder API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(HTTP_CFG.cors_allow_origins),
    allow_credentials=False,
    allow_methods=["POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

app.include_router(billing_router)
app.include_router(handbooks_router)


@app.get("/healthz")
def healthz():
    return {"status": "ok"}
