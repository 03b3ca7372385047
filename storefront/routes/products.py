import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, selectinload

from storefront.database import get_db
from storefront.errors import NotFound
from storefront.models import Category, Product
from storefront.serializers import ok, serialize_product

router = APIRouter(prefix="/products", tags=["products"])


# =====================================================
# PUBLIC: LIST PRODUCTS
# =====================================================

@router.get("")
def list_products(
    category: Optional[str] = None,
    search: Optional[str] = None,
    in_stock: bool = Query(False, alias="inStock"),
    page: int = Query(1, ge=1),
    per_page: int = Query(24, ge=1, le=100, alias="perPage"),
    db: Session = Depends(get_db),
):
    """Active products, newest first. ``category`` accepts a slug or an id."""
    filters = [Product.is_active.is_(True)]

    if category:
        category_filter = [Category.slug == category]
        try:
            category_filter.append(Category.id == uuid.UUID(category))
        except ValueError:
            pass
        filters.append(
            Product.category_id.in_(select(Category.id).where(or_(*category_filter)))
        )

    if search:
        term = f"%{search.strip()}%"
        filters.append(or_(Product.name.ilike(term), Product.short_description.ilike(term)))

    if in_stock:
        filters.append(Product.stock > 0)

    total = db.scalar(select(func.count(Product.id)).where(*filters))
    products = db.scalars(
        select(Product)
        .where(*filters)
        .order_by(Product.created_at.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    ).all()

    return ok(
        [serialize_product(p) for p in products],
        pagination={
            "total": total,
            "page": page,
            "perPage": per_page,
            "pages": (total + per_page - 1) // per_page,
        },
    )


# =====================================================
# PUBLIC: PRODUCT DETAIL
# =====================================================

@router.get("/{id_or_slug}")
def get_product(id_or_slug: str, db: Session = Depends(get_db)):
    condition = Product.slug == id_or_slug
    try:
        condition = or_(condition, Product.id == uuid.UUID(id_or_slug))
    except ValueError:
        pass

    product = db.scalar(
        select(Product)
        .options(selectinload(Product.variants))
        .where(condition, Product.is_active.is_(True))
    )
    if not product:
        raise NotFound("Product not found")
    return ok(serialize_product(product, include_variants=True))
