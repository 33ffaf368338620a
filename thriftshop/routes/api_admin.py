from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Header, HTTPException, Query, Request, UploadFile
import psycopg
from psycopg.types.json import Jsonb

from ..audit import log_admin_action
from ..catalog import PRODUCT_COLUMNS, PRODUCT_STATUSES, product_field_errors, product_from_row, search_products
from ..config import AppConfig
from ..db import db_unavailable, get_conn, schema_missing, ts
from ..models import (
    ORDER_STATUSES,
    AuditLogItemOut,
    DashboardOut,
    ImageUploadOut,
    OrderOut,
    OrderStatusIn,
    ProductIn,
    ProductOut,
    ProductUpdateIn,
    PromoteAdminIn,
    StoreSettingsIn,
    StoreSettingsOut,
    UserWithRoleOut,
)
from ..orders import ACTIVE_STATUSES, ORDER_COLUMNS, fetch_items, is_valid_status_transition, order_from_row
from ..rate_limit import RateLimiter, enforce
from ..security import get_current_user, require_admin, require_csrf
from ..store import SETTINGS_COLUMNS, fetch_settings, settings_from_row
from ..uploads import MAX_FILE_SIZE, MAX_FILES_PER_UPLOAD, store_image, validate_image
from ..validation import is_valid_uuid


router = APIRouter(prefix="/api/admin", tags=["api_admin"])

_log = logging.getLogger("thriftshop.admin")

UPLOAD_LIMITER = RateLimiter(max_requests=10, window_seconds=60)

UPLOAD_URL_PREFIX = "/static/uploads"

_PRODUCT_WRITABLE = (
    "name",
    "description",
    "category",
    "size",
    "condition",
    "price",
    "original_price",
    "images",
    "measurements",
    "status",
)

# Columns that may be cleared with an explicit null.
_PRODUCT_NULLABLE = ("description", "original_price", "measurements")


def admin_user(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    try:
        with get_conn() as conn:
            require_admin(conn, user)
    except psycopg.OperationalError:
        raise db_unavailable()
    except (psycopg.errors.UndefinedTable, psycopg.errors.InvalidSchemaName, psycopg.errors.UndefinedFunction):
        raise schema_missing("thriftshop.has_role")
    return user


def admin_mutation(
    user: Dict[str, Any] = Depends(admin_user),
    csrf_token: str | None = Header(None, alias="X-CSRF-Token"),
) -> Dict[str, Any]:
    require_csrf(user, csrf_token)
    return user


# --------------------------------------------------------------------------------------
# Dashboard
# --------------------------------------------------------------------------------------


@router.get("/dashboard", response_model=DashboardOut)
def dashboard(user: Dict[str, Any] = Depends(admin_user)) -> DashboardOut:
    try:
        with get_conn() as conn:
            conn.execute("SET TIME ZONE 'UTC';", prepare=False)
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT
                        (SELECT COUNT(*) FROM thriftshop.products),
                        (SELECT COUNT(*) FROM thriftshop.orders WHERE status = ANY(%s)),
                        (SELECT COALESCE(SUM(total), 0) FROM thriftshop.orders
                          WHERE payment_status = 'paid' AND created_at >= date_trunc('day', NOW())),
                        (SELECT COALESCE(SUM(total), 0) FROM thriftshop.orders
                          WHERE payment_status = 'paid' AND created_at >= date_trunc('month', NOW()));
                    """,
                    (list(ACTIVE_STATUSES),),
                )
                total_products, active_orders, today_revenue, month_revenue = cur.fetchone()

                cur.execute(
                    f"SELECT {ORDER_COLUMNS} FROM thriftshop.orders ORDER BY created_at DESC LIMIT 10;"
                )
                recent = [order_from_row(r) for r in cur.fetchall()]
                items = fetch_items(cur, [o.id for o in recent])
    except psycopg.OperationalError:
        raise db_unavailable()
    except (psycopg.errors.UndefinedTable, psycopg.errors.InvalidSchemaName):
        raise schema_missing()

    for o in recent:
        o.items = items.get(o.id, [])
        o.item_count = len(o.items)

    return DashboardOut(
        total_products=int(total_products),
        active_orders=int(active_orders),
        today_revenue=float(today_revenue),
        month_revenue=float(month_revenue),
        recent_orders=recent,
    )


# --------------------------------------------------------------------------------------
# Products
# --------------------------------------------------------------------------------------


@router.get("/products", response_model=List[ProductOut])
def list_products(
    q: Optional[str] = Query(None, max_length=100),
    status: Optional[str] = Query(None),
    user: Dict[str, Any] = Depends(admin_user),
) -> List[ProductOut]:
    if status is not None and status not in PRODUCT_STATUSES:
        raise HTTPException(status_code=400, detail=f"Status must be one of: {', '.join(PRODUCT_STATUSES)}")

    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(f"SELECT {PRODUCT_COLUMNS} FROM thriftshop.products ORDER BY created_at DESC;")
                rows = cur.fetchall()
    except psycopg.OperationalError:
        raise db_unavailable()
    except (psycopg.errors.UndefinedTable, psycopg.errors.InvalidSchemaName):
        raise schema_missing("thriftshop.products")

    products = search_products([product_from_row(r) for r in rows], q)
    if status is not None:
        products = [p for p in products if p.status == status]
    return products


@router.post("/products", response_model=ProductOut, status_code=201)
def create_product(
    req: ProductIn,
    request: Request,
    user: Dict[str, Any] = Depends(admin_mutation),
) -> ProductOut:
    errors = product_field_errors(req.category, req.size, req.condition, req.status)
    if errors:
        raise HTTPException(status_code=422, detail=errors)

    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    INSERT INTO thriftshop.products (
                        name, description, category, size, condition, price, original_price,
                        images, measurements, status
                    )
                    VALUES (%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)
                    RETURNING {PRODUCT_COLUMNS};
                    """,
                    (
                        req.name,
                        req.description,
                        req.category,
                        req.size,
                        req.condition,
                        req.price,
                        req.original_price,
                        req.images,
                        Jsonb(req.measurements) if req.measurements is not None else None,
                        req.status,
                    ),
                )
                product = product_from_row(cur.fetchone())
            log_admin_action(
                conn,
                user_id=str(user["sub"]),
                action="product_created",
                details={"product_id": product.id, "name": product.name},
                request=request,
            )
            conn.commit()
    except psycopg.OperationalError:
        raise db_unavailable()
    except (psycopg.errors.UndefinedTable, psycopg.errors.InvalidSchemaName):
        raise schema_missing("thriftshop.products")
    except psycopg.IntegrityError:
        _log.warning("Product write rejected by database constraints", exc_info=True)
        raise HTTPException(status_code=422, detail=["Product data violates a database constraint"])

    return product


@router.patch("/products/{product_id}", response_model=ProductOut)
def update_product(
    product_id: str,
    req: ProductUpdateIn,
    request: Request,
    user: Dict[str, Any] = Depends(admin_mutation),
) -> ProductOut:
    if not is_valid_uuid(product_id):
        raise HTTPException(status_code=404, detail="Product not found")

    changes = {k: v for k, v in req.model_dump(exclude_unset=True).items() if k in _PRODUCT_WRITABLE}
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")
    nulls = [f"'{k}' cannot be null" for k in changes if changes[k] is None and k not in _PRODUCT_NULLABLE]
    if nulls:
        raise HTTPException(status_code=422, detail=nulls)
    if changes.get("name") == "":
        raise HTTPException(status_code=422, detail=["Name is required"])

    errors = product_field_errors(
        changes.get("category"), changes.get("size"), changes.get("condition"), changes.get("status")
    )
    if errors:
        raise HTTPException(status_code=422, detail=errors)

    if "measurements" in changes and changes["measurements"] is not None:
        changes["measurements"] = Jsonb(changes["measurements"])

    assignments = ", ".join(f"{col} = %s" for col in changes)
    params = list(changes.values()) + [product_id]

    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    UPDATE thriftshop.products
                    SET {assignments}, updated_at = NOW()
                    WHERE id = %s
                    RETURNING {PRODUCT_COLUMNS};
                    """,
                    params,
                )
                row = cur.fetchone()
                if row is None:
                    raise HTTPException(status_code=404, detail="Product not found")
                product = product_from_row(row)
            log_admin_action(
                conn,
                user_id=str(user["sub"]),
                action="product_updated",
                details={"product_id": product_id, "fields": sorted(changes)},
                request=request,
            )
            conn.commit()
    except psycopg.OperationalError:
        raise db_unavailable()
    except (psycopg.errors.UndefinedTable, psycopg.errors.InvalidSchemaName):
        raise schema_missing("thriftshop.products")
    except psycopg.IntegrityError:
        _log.warning("Product write rejected by database constraints", exc_info=True)
        raise HTTPException(status_code=422, detail=["Product data violates a database constraint"])

    return product


@router.delete("/products/{product_id}")
def delete_product(
    product_id: str,
    request: Request,
    user: Dict[str, Any] = Depends(admin_mutation),
):
    if not is_valid_uuid(product_id):
        raise HTTPException(status_code=404, detail="Product not found")

    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "DELETE FROM thriftshop.products WHERE id = %s RETURNING name;",
                    (product_id,),
                )
                row = cur.fetchone()
                if row is None:
                    raise HTTPException(status_code=404, detail="Product not found")
            log_admin_action(
                conn,
                user_id=str(user["sub"]),
                action="product_deleted",
                details={"product_id": product_id, "name": str(row[0])},
                request=request,
            )
            conn.commit()
    except psycopg.OperationalError:
        raise db_unavailable()
    except (psycopg.errors.UndefinedTable, psycopg.errors.InvalidSchemaName):
        raise schema_missing("thriftshop.products")

    return {"ok": True, "deleted_id": product_id}


@router.post("/products/images", response_model=ImageUploadOut)
def upload_product_images(
    request: Request,
    files: List[UploadFile] = File(...),
    user: Dict[str, Any] = Depends(admin_mutation),
) -> ImageUploadOut:
    user_id = str(user["sub"])
    enforce(UPLOAD_LIMITER, f"upload:{user_id}")

    if len(files) > MAX_FILES_PER_UPLOAD:
        raise HTTPException(status_code=400, detail=f"Maximum {MAX_FILES_PER_UPLOAD} files per upload")

    upload_dir = Path(AppConfig().upload_dir)
    urls: List[str] = []
    rejected: List[Dict[str, str]] = []
    for f in files:
        filename = f.filename or ""
        # One byte past the limit is enough to reject oversize files.
        data = f.file.read(MAX_FILE_SIZE + 1)
        check = validate_image(filename, f.content_type, data)
        if not check.valid:
            rejected.append({"filename": filename, "error": str(check.error)})
            continue
        name = store_image(upload_dir, filename, data)
        urls.append(f"{UPLOAD_URL_PREFIX}/{name}")

    if not urls:
        raise HTTPException(status_code=400, detail={"message": "No valid images uploaded", "rejected": rejected})

    try:
        with get_conn() as conn:
            log_admin_action(
                conn,
                user_id=user_id,
                action="product_images_uploaded",
                details={"count": len(urls), "rejected": len(rejected)},
                request=request,
            )
            conn.commit()
    except psycopg.OperationalError:
        raise db_unavailable()
    except (psycopg.errors.UndefinedTable, psycopg.errors.InvalidSchemaName):
        raise schema_missing("thriftshop.audit_logs")

    return ImageUploadOut(urls=urls, rejected=rejected)


# --------------------------------------------------------------------------------------
# Orders
# --------------------------------------------------------------------------------------


@router.get("/orders", response_model=List[OrderOut])
def list_orders(
    status: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    user: Dict[str, Any] = Depends(admin_user),
) -> List[OrderOut]:
    if status is not None and status not in ORDER_STATUSES:
        raise HTTPException(status_code=400, detail=f"Status must be one of: {', '.join(ORDER_STATUSES)}")

    where = "WHERE status = %s" if status else ""
    params: List[Any] = [status] if status else []
    params += [int(limit), int(offset)]

    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    SELECT {ORDER_COLUMNS}
                    FROM thriftshop.orders
                    {where}
                    ORDER BY created_at DESC
                    LIMIT %s OFFSET %s;
                    """,
                    params,
                )
                orders = [order_from_row(r) for r in cur.fetchall()]
                items = fetch_items(cur, [o.id for o in orders])
    except psycopg.OperationalError:
        raise db_unavailable()
    except (psycopg.errors.UndefinedTable, psycopg.errors.InvalidSchemaName):
        raise schema_missing("thriftshop.orders")

    for o in orders:
        o.items = items.get(o.id, [])
        o.item_count = len(o.items)
    return orders


@router.patch("/orders/{order_id}/status", response_model=OrderOut)
def update_order_status(
    order_id: str,
    req: OrderStatusIn,
    request: Request,
    user: Dict[str, Any] = Depends(admin_mutation),
) -> OrderOut:
    if not is_valid_uuid(order_id):
        raise HTTPException(status_code=404, detail="Order not found")
    if req.status not in ORDER_STATUSES:
        raise HTTPException(status_code=400, detail=f"Status must be one of: {', '.join(ORDER_STATUSES)}")

    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT status FROM thriftshop.orders WHERE id = %s FOR UPDATE;", (order_id,))
                row = cur.fetchone()
                if row is None:
                    raise HTTPException(status_code=404, detail="Order not found")
                old_status = str(row[0])
                if not is_valid_status_transition(old_status, req.status):
                    raise HTTPException(status_code=400, detail=f"Cannot move order from {old_status} to {req.status}")

                cur.execute(
                    f"""
                    UPDATE thriftshop.orders SET status = %s, updated_at = NOW()
                    WHERE id = %s
                    RETURNING {ORDER_COLUMNS};
                    """,
                    (req.status, order_id),
                )
                order = order_from_row(cur.fetchone())
                order.items = fetch_items(cur, [order.id])[order.id]
                order.item_count = len(order.items)
            log_admin_action(
                conn,
                user_id=str(user["sub"]),
                action="order_status_changed",
                details={"order_id": order_id, "old_status": old_status, "new_status": req.status},
                request=request,
            )
            conn.commit()
    except psycopg.OperationalError:
        raise db_unavailable()
    except (psycopg.errors.UndefinedTable, psycopg.errors.InvalidSchemaName):
        raise schema_missing("thriftshop.orders")

    return order


# --------------------------------------------------------------------------------------
# Customers
# --------------------------------------------------------------------------------------


@router.get("/customers", response_model=List[UserWithRoleOut])
def list_customers(user: Dict[str, Any] = Depends(admin_user)) -> List[UserWithRoleOut]:
    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT u.id, u.email, COALESCE(p.name, ''), COALESCE(r.role, 'customer')
                    FROM thriftshop.users u
                    LEFT JOIN thriftshop.profiles p ON p.user_id = u.id
                    LEFT JOIN thriftshop.user_roles r ON r.user_id = u.id
                    ORDER BY u.created_at DESC;
                    """
                )
                rows = cur.fetchall()
    except psycopg.OperationalError:
        raise db_unavailable()
    except (psycopg.errors.UndefinedTable, psycopg.errors.InvalidSchemaName):
        raise schema_missing("thriftshop.users")

    return [UserWithRoleOut(user_id=str(r[0]), email=str(r[1]), name=str(r[2]), role=str(r[3])) for r in rows]


@router.post("/customers/promote", response_model=UserWithRoleOut)
def promote_admin(
    req: PromoteAdminIn,
    request: Request,
    user: Dict[str, Any] = Depends(admin_mutation),
) -> UserWithRoleOut:
    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT u.id, u.email, COALESCE(p.name, ''), r.role
                    FROM thriftshop.users u
                    LEFT JOIN thriftshop.profiles p ON p.user_id = u.id
                    LEFT JOIN thriftshop.user_roles r ON r.user_id = u.id
                    WHERE u.email = %s;
                    """,
                    (req.email,),
                )
                row = cur.fetchone()
                if row is None:
                    raise HTTPException(status_code=404, detail="User not found. They must sign up first.")
                if row[3] == "admin":
                    raise HTTPException(status_code=409, detail="User is already an admin")
                target_id = str(row[0])
                cur.execute(
                    """
                    INSERT INTO thriftshop.user_roles (user_id, role) VALUES (%s, 'admin')
                    ON CONFLICT (user_id) DO UPDATE SET role = 'admin';
                    """,
                    (target_id,),
                )
            log_admin_action(
                conn,
                user_id=str(user["sub"]),
                action="user_promoted_admin",
                details={"target_user_id": target_id, "email": req.email},
                request=request,
            )
            conn.commit()
    except psycopg.OperationalError:
        raise db_unavailable()
    except (psycopg.errors.UndefinedTable, psycopg.errors.InvalidSchemaName):
        raise schema_missing("thriftshop.user_roles")

    return UserWithRoleOut(user_id=target_id, email=str(row[1]), name=str(row[2]), role="admin")


@router.post("/customers/{user_id}/demote", response_model=UserWithRoleOut)
def demote_admin(
    user_id: str,
    request: Request,
    user: Dict[str, Any] = Depends(admin_mutation),
) -> UserWithRoleOut:
    if not is_valid_uuid(user_id):
        raise HTTPException(status_code=404, detail="User not found")
    if user_id == str(user["sub"]):
        raise HTTPException(status_code=400, detail="You cannot remove your own admin role")

    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE thriftshop.user_roles SET role = 'customer'
                    WHERE user_id = %s AND role = 'admin'
                    RETURNING user_id;
                    """,
                    (user_id,),
                )
                if cur.fetchone() is None:
                    raise HTTPException(status_code=404, detail="Admin not found")
                cur.execute(
                    """
                    SELECT u.email, COALESCE(p.name, '')
                    FROM thriftshop.users u
                    LEFT JOIN thriftshop.profiles p ON p.user_id = u.id
                    WHERE u.id = %s;
                    """,
                    (user_id,),
                )
                email, name = cur.fetchone()
            log_admin_action(
                conn,
                user_id=str(user["sub"]),
                action="user_demoted_admin",
                details={"target_user_id": user_id, "email": str(email)},
                request=request,
            )
            conn.commit()
    except psycopg.OperationalError:
        raise db_unavailable()
    except (psycopg.errors.UndefinedTable, psycopg.errors.InvalidSchemaName):
        raise schema_missing("thriftshop.user_roles")

    return UserWithRoleOut(user_id=user_id, email=str(email), name=str(name), role="customer")


# --------------------------------------------------------------------------------------
# Settings
# --------------------------------------------------------------------------------------


@router.get("/settings", response_model=StoreSettingsOut)
def get_settings(user: Dict[str, Any] = Depends(admin_user)) -> StoreSettingsOut:
    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                return fetch_settings(cur)
    except psycopg.OperationalError:
        raise db_unavailable()
    except (psycopg.errors.UndefinedTable, psycopg.errors.InvalidSchemaName):
        raise schema_missing("thriftshop.store_settings")


@router.put("/settings", response_model=StoreSettingsOut)
def update_settings(
    req: StoreSettingsIn,
    request: Request,
    user: Dict[str, Any] = Depends(admin_mutation),
) -> StoreSettingsOut:
    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                current = fetch_settings(cur)
                cur.execute(
                    f"""
                    UPDATE thriftshop.store_settings
                    SET store_name = %s, contact_email = %s, contact_phone = %s,
                        shipping_charge = %s, free_shipping_threshold = %s,
                        new_order_notifications = %s, low_stock_alerts = %s, customer_messages = %s,
                        updated_at = NOW()
                    WHERE id = %s
                    RETURNING {SETTINGS_COLUMNS};
                    """,
                    (
                        req.store_name.strip(),
                        req.contact_email,
                        req.contact_phone.strip(),
                        req.shipping_charge,
                        req.free_shipping_threshold,
                        req.new_order_notifications,
                        req.low_stock_alerts,
                        req.customer_messages,
                        current.id,
                    ),
                )
                updated = settings_from_row(cur.fetchone())
            log_admin_action(
                conn,
                user_id=str(user["sub"]),
                action="settings_updated",
                details={"store_name": updated.store_name},
                request=request,
            )
            conn.commit()
    except psycopg.OperationalError:
        raise db_unavailable()
    except (psycopg.errors.UndefinedTable, psycopg.errors.InvalidSchemaName):
        raise schema_missing("thriftshop.store_settings")

    return updated


# --------------------------------------------------------------------------------------
# Audit log
# --------------------------------------------------------------------------------------


@router.get("/audit-log", response_model=List[AuditLogItemOut])
def audit_log(
    limit: int = Query(200, ge=1, le=500),
    offset: int = Query(0, ge=0),
    action: Optional[str] = Query(None),
    user: Dict[str, Any] = Depends(admin_user),
) -> List[AuditLogItemOut]:
    where = "WHERE action = %s" if action else ""
    params: List[Any] = [action] if action else []
    params += [int(limit), int(offset)]

    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    SELECT id, user_id, action, details, ip_address, user_agent, created_at
                    FROM thriftshop.audit_logs
                    {where}
                    ORDER BY created_at DESC, id DESC
                    LIMIT %s OFFSET %s;
                    """,
                    params,
                )
                rows = cur.fetchall()
    except psycopg.OperationalError:
        raise db_unavailable()
    except (psycopg.errors.UndefinedTable, psycopg.errors.InvalidSchemaName):
        raise schema_missing("thriftshop.audit_logs")

    return [
        AuditLogItemOut(
            id=int(r[0]),
            user_id=str(r[1]) if r[1] is not None else None,
            action=str(r[2]),
            details=dict(r[3] or {}),
            ip_address=r[4],
            user_agent=r[5],
            created_at=ts(r[6]),
        )
        for r in rows
    ]
