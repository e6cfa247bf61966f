import logging
import math
import os
import re
from typing import List, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pymongo.errors import PyMongoError

import database
from auth import (
    AdminSession,
    InvalidCredentials,
    SessionContext,
    ensure_admin,
    get_session_context,
    log_session_change,
    require_admin,
    sign_in,
)
from bulk import run_batch
from database import create_document, delete_document, find_one, get_document, get_documents, update_document
from export import orders_csv, products_csv
from media import UploadError, dedupe_files, upload_images
from notify import notify_order
from pricing import (
    dashboard_summary,
    format_money,
    format_weight,
    normalize_order,
    order_aggregates,
    parse_price,
    quote_order,
    to_number,
)
from schemas import (
    BulkRequest,
    CheckoutRequest,
    LoginRequest,
    Order,
    OrderStatus,
    Product,
    ProductCreate,
    ProductUpdate,
    QuoteRequest,
)
from slugs import check_slug_exists, is_slug, suggest_slug

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

PRODUCTS = "products"
ORDERS = "orders"

app = FastAPI(title="Storefront API", version="1.0.0")
app.state.sessions = SessionContext()

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Helpers

def to_str_id(doc: dict):
    if not doc:
        return doc
    d = doc.copy()
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    return d


def find_product(id_or_slug: str) -> Optional[dict]:
    doc = get_document(PRODUCTS, id_or_slug)
    if doc is None:
        # Client may pass slug
        doc = find_one(PRODUCTS, {"slug": id_or_slug})
    return doc


def validation_error(errors: dict, message: str = "Please correct the highlighted fields"):
    return HTTPException(status_code=400, detail={"message": message, "errors": errors})


def csv_download(content: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def quote_display(quote) -> dict:
    return {
        "unit_price": format_money(quote.unit_price),
        "items_total": format_money(quote.items_total),
        "delivery_fee": format_money(quote.delivery_fee),
        "grand_total": format_money(quote.grand_total),
        "total_weight": format_weight(quote.total_weight_kg),
    }

# -----------------
# Error translation
# -----------------

@app.exception_handler(database.DatabaseUnavailable)
async def database_unavailable_handler(request: Request, exc: database.DatabaseUnavailable):
    logger.error("%s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": "Database not available"})


@app.exception_handler(PyMongoError)
async def database_error_handler(request: Request, exc: PyMongoError):
    logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": "Database error, please try again"})


@app.exception_handler(UploadError)
async def upload_error_handler(request: Request, exc: UploadError):
    logger.error("Upload failed: %s", exc)
    return JSONResponse(status_code=502, content={"detail": str(exc)})

# ---------
# Root/Test
# ---------

@app.get("/")
def read_root():
    return {"message": "Storefront API is running"}

@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": []
    }

    if database.db is not None:
        response["database"] = "✅ Available"
        response["connection_status"] = "Connected"
        try:
            response["collections"] = database.db.list_collection_names()[:10]
            response["database"] = "✅ Connected & Working"
        except PyMongoError as e:
            response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"
    return response

# ---------------
# Catalog Endpoints
# ---------------

CATALOG_SORTS = ("latest", "price-asc", "price-desc")

@app.get("/api/products")
def list_products(category: Optional[str] = None, q: Optional[str] = None, sort: str = "latest", limit: int = 200):
    if sort not in CATALOG_SORTS:
        raise validation_error({"sort": f"Sort must be one of: {', '.join(CATALOG_SORTS)}"})
    filter_dict = {}
    if category:
        filter_dict["category"] = category
    if q:
        rx = {"$regex": re.escape(q), "$options": "i"}
        filter_dict["$or"] = [{"title": rx}, {"description": rx}]
    if sort == "latest":
        docs = get_documents(PRODUCTS, filter_dict, limit)
    else:
        # Prices may be stored as text
        docs = sorted(
            get_documents(PRODUCTS, filter_dict),
            key=lambda d: parse_price(d.get("price")),
            reverse=sort == "price-desc",
        )[:limit]
    return [to_str_id(d) for d in docs]

@app.get("/api/products/{product_id}")
def get_product(product_id: str):
    doc = find_product(product_id)
    if not doc:
        raise HTTPException(status_code=404, detail="Product not found")
    return to_str_id(doc)

@app.get("/api/categories")
def list_categories():
    return sorted(database.distinct_values(PRODUCTS, "category"))

# -------------------------
# Pricing endpoints (quote)
# -------------------------

@app.post("/api/pricing/quote")
def pricing_quote(payload: QuoteRequest):
    if payload.product_id:
        product = find_product(payload.product_id)
        if not product:
            raise HTTPException(status_code=404, detail="Product not found")
        price_per_unit = parse_price(product.get("price"))
    elif payload.price_per_unit is not None:
        price_per_unit = payload.price_per_unit
    else:
        raise validation_error({"price_per_unit": "Give a product_id or a price_per_unit"})

    quote = quote_order(price_per_unit, payload.unit_size, payload.quantity, payload.delivery_zone)
    return {"price_per_unit": price_per_unit, **quote.model_dump(), "display": quote_display(quote)}

# ---------------
# Orders Endpoints
# ---------------

def validate_checkout(payload: CheckoutRequest) -> dict:
    errors = {}
    if not payload.name.strip():
        errors["name"] = "Enter your name"
    if len(re.sub(r"\D", "", payload.phone)) < 10:
        errors["phone"] = "Enter a mobile number"
    if not payload.address.strip():
        errors["address"] = "Enter your address"
    if payload.quantity < 1:
        errors["quantity"] = "Select at least 1"
    return errors

@app.post("/api/orders", status_code=201)
def create_order(payload: CheckoutRequest, background_tasks: BackgroundTasks):
    errors = validate_checkout(payload)
    if errors:
        raise validation_error(errors, "Please fill in the form correctly")

    product = find_product(payload.product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    # Snapshot the product price now; later product edits must not touch this order
    price_per_unit = parse_price(product.get("price"))
    quote = quote_order(price_per_unit, payload.unit_size, payload.quantity, payload.delivery_zone)
    order = Order(
        product_id=str(product["_id"]),
        product_title=product.get("title") or "",
        price_per_unit=price_per_unit,
        unit_size=payload.unit_size,
        unit_weight_grams=quote.unit_fraction * 1000,
        unit_weight_kg=quote.unit_fraction,
        unit_price=quote.unit_price,
        quantity=payload.quantity,
        total_weight_kg=quote.total_weight_kg,
        items_total=quote.items_total,
        delivery_zone=payload.delivery_zone,
        delivery_fee=quote.delivery_fee,
        grand_total=quote.grand_total,
        name=payload.name.strip(),
        phone=payload.phone.strip(),
        address=payload.address.strip(),
    )
    safe_order = order.model_dump(mode="json")
    inserted_id = create_document(ORDERS, safe_order)

    # Fire-and-forget: runs after the response, its outcome never reaches the client
    background_tasks.add_task(notify_order, {"order_id": inserted_id, **safe_order})

    logger.info("Order %s placed: %s x%d, total %s", inserted_id, order.product_title, order.quantity, format_money(order.grand_total))
    return {"id": inserted_id, **safe_order}

# ---------------
# Admin: session
# ---------------

@app.post("/api/admin/login")
def admin_login(payload: LoginRequest, context: SessionContext = Depends(get_session_context)):
    try:
        session = sign_in(context, payload.email, payload.password)
    except InvalidCredentials:
        raise HTTPException(status_code=401, detail="Login failed")
    return {"access_token": session.token, "token_type": "bearer", "email": session.email}

@app.post("/api/admin/logout")
def admin_logout(session: AdminSession = Depends(require_admin), context: SessionContext = Depends(get_session_context)):
    context.close(session.token)
    return {"signed_out": True}

@app.get("/api/admin/me")
def admin_me(session: AdminSession = Depends(require_admin)):
    return {"email": session.email, "signed_in_at": session.signed_in_at}

# ------------------
# Admin: dashboard
# ------------------

def load_orders() -> list:
    return [normalize_order(d) for d in get_documents(ORDERS)]

@app.get("/api/admin/dashboard")
def admin_dashboard(session: AdminSession = Depends(require_admin)):
    return dashboard_summary(load_orders())

# ---------------
# Admin: orders
# ---------------

@app.get("/api/admin/orders")
def admin_list_orders(session: AdminSession = Depends(require_admin)):
    orders = load_orders()
    return {"orders": orders, "aggregates": order_aggregates(orders)}

def confirm_order_by_id(order_id: str) -> None:
    update_document(ORDERS, order_id, {"status": OrderStatus.CONFIRMED.value})

def delete_order_by_id(order_id: str) -> None:
    delete_document(ORDERS, order_id)

@app.post("/api/admin/orders/bulk-confirm")
def admin_bulk_confirm(payload: BulkRequest, session: AdminSession = Depends(require_admin)):
    if not payload.ids:
        raise validation_error({"ids": "No orders selected"})
    return run_batch(payload.ids, confirm_order_by_id)

@app.post("/api/admin/orders/bulk-delete")
def admin_bulk_delete_orders(payload: BulkRequest, session: AdminSession = Depends(require_admin)):
    if not payload.ids:
        raise validation_error({"ids": "No orders selected"})
    return run_batch(payload.ids, delete_order_by_id)

@app.get("/api/admin/orders/export.csv")
def admin_export_orders(session: AdminSession = Depends(require_admin)):
    return csv_download(orders_csv(load_orders()), "orders.csv")

@app.post("/api/admin/orders/{order_id}/confirm")
def admin_confirm_order(order_id: str, session: AdminSession = Depends(require_admin)):
    try:
        confirm_order_by_id(order_id)
    except database.DocumentNotFound:
        raise HTTPException(status_code=404, detail="Order not found")
    return {"id": order_id, "status": OrderStatus.CONFIRMED.value}

@app.delete("/api/admin/orders/{order_id}")
def admin_delete_order(order_id: str, session: AdminSession = Depends(require_admin)):
    try:
        delete_order_by_id(order_id)
    except database.DocumentNotFound:
        raise HTTPException(status_code=404, detail="Order not found")
    return {"id": order_id, "deleted": True}

# ----------------
# Admin: products
# ----------------

PAGE_SIZES = (8, 12, 24)

def filter_products(products: list, q: Optional[str], category: Optional[str]) -> list:
    if category:
        products = [p for p in products if p.get("category") == category]
    term = (q or "").strip().lower()
    if term:
        products = [
            p for p in products
            if term in str(p.get("title") or "").lower() or term in str(p.get("description") or "").lower()
        ]
    return products

@app.get("/api/admin/products")
def admin_list_products(
    q: Optional[str] = None,
    category: Optional[str] = None,
    page: int = 1,
    per_page: int = 12,
    session: AdminSession = Depends(require_admin),
):
    products = [to_str_id(d) for d in get_documents(PRODUCTS)]
    categories = sorted({p["category"] for p in products if p.get("category")})
    filtered = filter_products(products, q, category)

    if per_page not in PAGE_SIZES:
        per_page = 12
    total_pages = max(1, math.ceil(len(filtered) / per_page))
    if page < 1 or page > total_pages:
        page = 1
    start = (page - 1) * per_page
    return {
        "products": filtered[start:start + per_page],
        "categories": categories,
        "total": len(filtered),
        "page": page,
        "per_page": per_page,
        "total_pages": total_pages,
    }

def validate_product(payload: ProductCreate) -> dict:
    errors = {}
    if not payload.title.strip():
        errors["title"] = "Title is required"
    price = to_number(payload.price)
    if price is None or price < 0:
        errors["price"] = "Enter a valid price"
    if payload.regular_price not in (None, ""):
        regular_price = to_number(payload.regular_price)
        if regular_price is None or regular_price < 0:
            errors["regular_price"] = "Enter a valid regular price"
    slug = payload.slug.strip()
    if not slug:
        errors["slug"] = "Slug is required"
    elif not is_slug(slug):
        errors["slug"] = "Use lowercase letters, digits and hyphens only"
    return errors

def validate_product_update(fields: dict) -> dict:
    """Check the fields of a partial edit; explicit nulls count as missing values."""
    errors = {}
    if "title" in fields and not (fields["title"] or "").strip():
        errors["title"] = "Title is required"
    if "description" in fields and fields["description"] is None:
        errors["description"] = "Description cannot be null, send an empty string to clear it"
    if "price" in fields:
        price = to_number(fields["price"])
        if price is None or price < 0:
            errors["price"] = "Enter a valid price"
    if fields.get("regular_price") not in (None, ""):
        regular_price = to_number(fields["regular_price"])
        if regular_price is None or regular_price < 0:
            errors["regular_price"] = "Enter a valid regular price"
    return errors

@app.post("/api/admin/products", status_code=201)
def admin_create_product(payload: ProductCreate, session: AdminSession = Depends(require_admin)):
    errors = validate_product(payload)
    if errors:
        raise validation_error(errors)

    slug = payload.slug.strip()
    if check_slug_exists(slug):
        raise validation_error({"slug": "This slug is already taken, choose another or use Suggest"})

    product = Product(
        title=payload.title.strip(),
        description=payload.description.strip(),
        price=to_number(payload.price),
        regular_price=to_number(payload.regular_price),
        images=payload.images,
        category=(payload.category or "").strip() or None,
        slug=slug,
    )
    inserted_id = create_document(PRODUCTS, product)
    logger.info("Product %s created with slug %s", inserted_id, slug)
    return {"id": inserted_id, "slug": slug}

@app.post("/api/admin/products/bulk-delete")
def admin_bulk_delete_products(payload: BulkRequest, session: AdminSession = Depends(require_admin)):
    if not payload.ids:
        raise validation_error({"ids": "No products selected"})
    return run_batch(payload.ids, lambda product_id: delete_document(PRODUCTS, product_id))

@app.get("/api/admin/products/export.csv")
def admin_export_products(
    q: Optional[str] = None,
    category: Optional[str] = None,
    session: AdminSession = Depends(require_admin),
):
    rows = filter_products([to_str_id(d) for d in get_documents(PRODUCTS)], q, category)
    return csv_download(products_csv(rows), "products.csv")

@app.patch("/api/admin/products/{product_id}")
def admin_update_product(product_id: str, payload: ProductUpdate, session: AdminSession = Depends(require_admin)):
    fields = payload.model_dump(exclude_unset=True)
    if not fields:
        raise validation_error({"body": "Nothing to update"})
    errors = validate_product_update(fields)
    if errors:
        raise validation_error(errors)

    if "title" in fields:
        fields["title"] = fields["title"].strip()
    if "description" in fields:
        fields["description"] = fields["description"].strip()
    if "price" in fields:
        fields["price"] = to_number(fields["price"])
    if "regular_price" in fields:
        fields["regular_price"] = to_number(fields["regular_price"])
    if "images" in fields and fields["images"] is None:
        fields["images"] = []
    if "category" in fields:
        fields["category"] = (fields["category"] or "").strip() or None
    try:
        update_document(PRODUCTS, product_id, fields)
    except database.DocumentNotFound:
        raise HTTPException(status_code=404, detail="Product not found")
    return to_str_id(get_document(PRODUCTS, product_id))

@app.delete("/api/admin/products/{product_id}")
def admin_delete_product(product_id: str, session: AdminSession = Depends(require_admin)):
    try:
        delete_document(PRODUCTS, product_id)
    except database.DocumentNotFound:
        raise HTTPException(status_code=404, detail="Product not found")
    return {"id": product_id, "deleted": True}

# -------------
# Admin: slugs
# -------------

@app.get("/api/admin/slugs/check")
async def admin_check_slug(slug: str = "", session: AdminSession = Depends(require_admin)):
    applied = await session.slug_gate.check(slug.strip())
    return {"slug": slug.strip(), "status": session.slug_gate.status, "stale": applied is None}

@app.get("/api/admin/slugs/suggest")
def admin_suggest_slug(title: str = "", session: AdminSession = Depends(require_admin)):
    slug = suggest_slug(title)
    if not slug:
        raise validation_error({"title": "Enter a title with letters or digits to suggest a slug"})
    return {"slug": slug}

# ---------------
# Admin: uploads
# ---------------

@app.post("/api/admin/uploads")
def admin_upload_images(files: List[UploadFile] = File(...), session: AdminSession = Depends(require_admin)):
    selected = dedupe_files((f.filename or "upload", f.size, f) for f in files)
    if not selected:
        raise validation_error({"files": "Select files first"})
    progress = {}

    def record(name: str, pct: int):
        progress[name] = pct

    urls = upload_images(((name, f.file, f.content_type) for name, _, f in selected), on_progress=record)
    return {"urls": urls, "progress": progress}

# -----------------
# Startup/Shutdown
# -----------------

@app.on_event("startup")
def startup_event():
    app.state.unsubscribe_sessions = app.state.sessions.subscribe(log_session_change)
    if database.db is None:
        return
    try:
        ensure_admin(os.getenv("ADMIN_EMAIL"), os.getenv("ADMIN_PASSWORD"))
    except PyMongoError as e:
        logger.error("Could not bootstrap admin user: %s", e)

@app.on_event("shutdown")
def shutdown_event():
    unsubscribe = getattr(app.state, "unsubscribe_sessions", None)
    if unsubscribe:
        unsubscribe()
    app.state.sessions.close_all()

if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
