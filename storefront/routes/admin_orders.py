from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.database import get_db
from storefront.dependencies import require_staff
from storefront.models import Profile
from storefront.serializers import ok, serialize_order_summary
from storefront.services import orders as order_service

router = APIRouter(prefix="/admin/orders", tags=["admin-orders"])


# =====================================================
# STAFF: LIST ORDERS (paginated + filterable)
# =====================================================

@router.get("")
def list_orders(
    status_filter: Optional[str] = Query(None, alias="status"),
    payment_status: Optional[str] = Query(None, alias="paymentStatus"),
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200, alias="perPage"),
    db: Session = Depends(get_db),
    staff: Profile = Depends(require_staff),
):
    """Admins see every order; sellers only orders that contain their products."""
    result = order_service.list_all_orders(
        db,
        staff,
        status=status_filter,
        payment_status=payment_status,
        search=search,
        page=page,
        per_page=per_page,
    )
    return ok(
        [serialize_order_summary(o) for o in result["orders"]],
        pagination={
            "total": result["total"],
            "page": result["page"],
            "perPage": result["per_page"],
            "pages": result["pages"],
        },
        stats=result["stats"],
    )
