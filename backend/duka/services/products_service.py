# backend/duka/services/products_service.py
"""
Products Service

Plain product CRUD. Stock quantities change only through stock_service; an
on_hand supplied at creation is recorded as the opening IN movement.
"""
from __future__ import annotations

from ..extensions import db
from ..models import Product, StockMovement
from .stock_service import get_product, MOVEMENT_IN

PRODUCT_MUTABLE_FIELDS = {"name", "description", "category", "unit", "cost_price", "selling_price", "reorder_level"}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def list_products(search: str | None = None, page: int | None = None, per_page: int | None = None) -> dict:
    """
    Product listing ordered by name, with optional name search and pagination.

    Returns a dict with 'items', 'count' and pagination metadata when paged.
    """
    base_query = db.session.query(Product).order_by(Product.name.asc(), Product.id.asc())
    if search:
        base_query = base_query.filter(Product.name.ilike(f"%{search.strip()}%"))

    if page is None:
        products = base_query.all()
        return {"items": [p.to_dict() for p in products], "count": len(products)}

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
    """Create a product from a validated patch dict."""
    opening = patch.get("on_hand") or 0
    p = Product(on_hand=opening)
    apply_product_patch(p, patch)
    db.session.add(p)
    db.session.flush()

    if opening:
        db.session.add(StockMovement(
            product_id=p.id,
            movement_type=MOVEMENT_IN,
            quantity=opening,
            note="Opening stock",
        ))

    db.session.commit()
    return p


def update_product(product_id: int, *, patch: dict) -> Product:
    """Edit descriptive and price fields. Selling price changes never touch past sales."""
    p = get_product(product_id)
    apply_product_patch(p, patch)
    db.session.commit()
    return p


def delete_product(product_id: int) -> None:
    """
    Explicit removal. Sale items keep their product_name; their product_id is
    nulled by the foreign key.
    """
    p = get_product(product_id)
    db.session.delete(p)
    db.session.commit()
