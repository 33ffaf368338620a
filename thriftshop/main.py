from __future__ import annotations

import logging
import uuid
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse
from fastapi.staticfiles import StaticFiles
from starlette.requests import Request

from .config import get_config
from .routes.addresses import router as addresses_router
from .routes.api_admin import router as api_admin_router
from .routes.api_auth import router as api_auth_router
from .routes.api_config import router as api_config_router
from .routes.cart import router as cart_router
from .routes.functions import router as functions_router
from .routes.orders import router as orders_router
from .routes.products import router as products_router


_PROJECT_ROOT = Path(__file__).resolve().parents[1]

_cfg = get_config()

app = FastAPI(title="Thriftshop API")

_log = logging.getLogger("thriftshop")
if not logging.getLogger().handlers:
    logging.basicConfig(level=_cfg.log_level, format="%(asctime)s %(levelname)s %(name)s %(message)s")

# Preview deployments are only trusted outside production.
_PREVIEW_ORIGIN_RE = r"https://([a-z0-9-]+\.)*(lovableproject\.com|lovable\.app)"


def cors_origin_regex(cfg) -> str | None:
    return None if cfg.is_production else _PREVIEW_ORIGIN_RE


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    rid = request.headers.get("x-request-id") or uuid.uuid4().hex[:12]
    response = await call_next(request)
    response.headers["X-Request-ID"] = rid
    _log.info("rid=%s method=%s path=%s status=%s", rid, request.method, request.url.path, response.status_code)
    return response


@app.middleware("http")
async def no_store_middleware(request: Request, call_next):
    response = await call_next(request)
    path = request.url.path or ""
    if path.startswith("/functions/") or path.startswith("/api/auth/") or path.startswith("/api/admin/"):
        response.headers["Cache-Control"] = "no-store"
        response.headers["Pragma"] = "no-cache"
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=_cfg.allowed_origins,
    allow_origin_regex=cors_origin_regex(_cfg),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type", "x-csrf-token", "x-request-id"],
)

app.include_router(products_router)
app.include_router(cart_router)
app.include_router(orders_router)
app.include_router(addresses_router)
app.include_router(api_auth_router)
app.include_router(api_admin_router)
app.include_router(api_config_router)
app.include_router(functions_router)


_FRONTEND_ROOT = _PROJECT_ROOT / "frontend"
_SHOP_DIR = _FRONTEND_ROOT / "shop"
_ADMIN_DIR = _FRONTEND_ROOT / "admin"
_STATIC_ROOT = _PROJECT_ROOT / "static"
_UPLOAD_DIR = Path(_cfg.upload_dir)

_UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
app.mount("/static/uploads", StaticFiles(directory=str(_UPLOAD_DIR)), name="uploads")

_STATIC_ROOT.mkdir(parents=True, exist_ok=True)
app.mount("/static", StaticFiles(directory=str(_STATIC_ROOT)), name="static")

if _SHOP_DIR.exists():
    app.mount("/shop", StaticFiles(directory=str(_SHOP_DIR), html=True), name="shop")

if _ADMIN_DIR.exists():
    app.mount("/admin", StaticFiles(directory=str(_ADMIN_DIR), html=True), name="admin")


@app.get("/")
def home():
    if _SHOP_DIR.exists():
        return RedirectResponse(url="/shop/")
    return {"status": "ok", "message": "Frontend not found. Open /docs for the API."}


@app.get("/health")
def health():
    return {"status": "ok", "environment": _cfg.environment}
