# Overview: Service-layer operations for the product catalog.

"""
Catalog Service

Stock is not writable here: new products start at zero and every change goes
through inventory_service. Price changes append a PriceHistory row in the same
transaction as the update.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import or_

from ..errors import AppError, ErrorCode
from ..extensions import db
from ..models import Category, Product
from .concurrency import run_in_transaction
from .price_history_service import record_price_change
from . import category_service

PRODUCT_MUTABLE_FIELDS = {
    "sku", "name", "author", "publisher", "description", "image_url", "price", "category_id", "is_active",
}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _ensure_sku_available(sku: str, exclude_id: int | None = None) -> None:
    q = db.session.query(Product).filter(Product.sku == sku)
    if exclude_id is not None:
        q = q.filter(Product.id != exclude_id)
    if q.first() is not None:
        raise AppError(ErrorCode.SKU_ALREADY_EXISTS, details={"sku": sku})


def _ensure_category(category_id: int | None) -> None:
    if category_id is not None and db.session.get(Category, category_id) is None:
        raise AppError(ErrorCode.CATEGORY_NOT_FOUND, details={"category_id": category_id})


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise AppError(ErrorCode.PRODUCT_NOT_FOUND, details={"product_id": product_id})
    return product


def list_products(
    *,
    search: str | None = None,
    category_id: int | None = None,
    include_subcategories: bool = False,
    active_only: bool = True,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Product listing with optional filters and pagination.

    include_subcategories widens category_id to its whole subtree.
    Returns {"items", "count"} plus "pagination" when page is given.
    """
    base_query = db.session.query(Product)
    if active_only:
        base_query = base_query.filter(Product.is_active.is_(True))
    if category_id is not None and include_subcategories:
        ids = [category_id, *category_service.descendant_ids(category_id)]
        base_query = base_query.filter(Product.category_id.in_(ids))
    elif category_id is not None:
        base_query = base_query.filter(Product.category_id == category_id)
    if search:
        pattern = f"%{search.strip()}%"
        base_query = base_query.filter(
            or_(Product.name.ilike(pattern), Product.sku.ilike(pattern), Product.author.ilike(pattern))
        )
    base_query = base_query.order_by(Product.name.asc(), Product.id.asc())

    if page is None:
        products = base_query.all()
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def create_product(*, patch: dict) -> Product:
    """Create product from a validated patch dict. Stock starts at zero."""
    def _op():
        _ensure_sku_available(patch["sku"])
        _ensure_category(patch.get("category_id"))
        p = Product(stock_quantity=0)
        apply_product_patch(p, patch)
        db.session.add(p)
        db.session.flush()
        current_app.logger.info(f"Created product {p.sku} (id={p.id})")
        return p

    return run_in_transaction(_op)


def update_product(
    *,
    product_id: int,
    patch: dict,
    changed_by_user_id: int | None = None,
    reason: str | None = None,
) -> Product:
    def _op():
        p = get_product(product_id)
        if "sku" in patch and patch["sku"] != p.sku:
            _ensure_sku_available(patch["sku"], exclude_id=p.id)
        if "category_id" in patch:
            _ensure_category(patch["category_id"])
        if "price" in patch and patch["price"] is not None:
            record_price_change(
                product_id=p.id,
                old_price=p.price,
                new_price=patch["price"],
                changed_by_user_id=changed_by_user_id,
                reason=reason,
            )
        apply_product_patch(p, patch)
        return p

    return run_in_transaction(_op)


def deactivate_product(product_id: int) -> Product:
    """Products referenced by orders and the ledger are hidden, never deleted."""
    def _op():
        p = get_product(product_id)
        p.is_active = False
        return p

    return run_in_transaction(_op)
