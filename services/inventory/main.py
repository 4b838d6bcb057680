"""Inventory service API built with FastAPI.

Owns the product catalog: product lookup for pricing, stock adjustments
for reservations and releases, and the low-stock count used by the admin
dashboard. Validation is done with Pydantic models and persistence is
delegated to ``repo.CatalogRepo``.
"""

import logging
import time
import uuid

from fastapi import FastAPI, HTTPException, Path, Request
from pydantic import BaseModel, Field
from pythonjsonlogger import jsonlogger
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from repo import CatalogRepo, engine, init_db

app = FastAPI(title="Inventory Service")

SKU_PATTERN = r"^[A-Z0-9_-]{3,32}$"

logger = logging.getLogger("inventory")
if not logger.handlers:
    h = logging.StreamHandler()
    h.setFormatter(jsonlogger.JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s"))
    logger.addHandler(h)
    logger.setLevel(logging.INFO)


@app.on_event("startup")
def _startup_db():
    # the database container may still be starting
    deadline = time.time() + 30
    while True:
        try:
            with engine.connect() as conn:
                conn.execute(text("select 1"))
            break
        except OperationalError:
            if time.time() > deadline:
                raise
            time.sleep(1)
    init_db()


class ProductIn(BaseModel):
    """Body of the product upsert endpoint."""

    name: str = Field(min_length=1, max_length=200)
    price_cents: int = Field(ge=0)
    image: str = ""
    stock: int = 0


class ProductOut(BaseModel):
    sku: str
    name: str
    price_cents: int
    image: str
    stock: int


class AdjustRequest(BaseModel):
    """Signed stock change: negative reserves, positive releases."""

    delta: int


class AdjustResponse(BaseModel):
    sku: str
    stock: int


class LowStockResponse(BaseModel):
    below: int
    count: int


@app.get("/health")
def health():
    return {"ok": True}


@app.get("/products/low-stock", response_model=LowStockResponse)
def low_stock(below: int = 5):
    return LowStockResponse(below=below, count=CatalogRepo().count_below(below))


@app.get("/products/{sku}", response_model=ProductOut)
def get_product(sku: str = Path(pattern=SKU_PATTERN)):
    product = CatalogRepo().get(sku)
    if product is None:
        raise HTTPException(status_code=404, detail="PRODUCT_NOT_FOUND")
    return product


@app.put("/products/{sku}", response_model=ProductOut)
def put_product(body: ProductIn, sku: str = Path(pattern=SKU_PATTERN)):
    return CatalogRepo().upsert(sku, body.name, body.price_cents, body.image, body.stock)


@app.post("/products/{sku}/adjust", response_model=AdjustResponse)
def adjust_stock(request: Request, req: AdjustRequest, sku: str = Path(pattern=SKU_PATTERN)):
    """Apply a stock delta atomically and return the committed stock.

    Raises:
        HTTPException: 404 when the SKU is unknown.
    """
    stock = CatalogRepo().adjust(sku, req.delta)
    if stock is None:
        raise HTTPException(status_code=404, detail="PRODUCT_NOT_FOUND")
    logger.info(
        "stock adjusted",
        extra={"request_id": getattr(request.state, "request_id", "-"), "sku": sku, "delta": req.delta, "stock": stock},
    )
    return AdjustResponse(sku=sku, stock=stock)


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = rid
    try:
        response = await call_next(request)
    finally:
        logger.info("request handled", extra={"request_id": rid, "path": request.url.path, "method": request.method})
    response.headers["X-Request-ID"] = rid
    return response
