from typing import Optional

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from storefront.database import get_db, with_transaction
from storefront.dependencies import get_current_user
from storefront.models import Profile
from storefront.schemas import CamelModel
from storefront.serializers import ok, serialize_address
from storefront.services import addresses as address_service

router = APIRouter(prefix="/addresses", tags=["addresses"])


# =====================================================
# Pydantic Schemas
# =====================================================

class AddressCreate(CamelModel):
    address_type: str = "shipping"
    label: Optional[str] = None
    full_name: Optional[str] = None
    phone: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    is_default: bool = False


class AddressUpdate(CamelModel):
    address_type: Optional[str] = None
    label: Optional[str] = None
    full_name: Optional[str] = None
    phone: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    is_default: Optional[bool] = None


# =====================================================
# USER: LIST / GET
# =====================================================

@router.get("")
def list_addresses(
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    """Default addresses first, then newest."""
    addresses = address_service.list_addresses(db, user.id)
    return ok([serialize_address(a) for a in addresses])


@router.get("/{address_id}")
def get_address(
    address_id: str,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    return ok(serialize_address(address_service.get_address(db, user.id, address_id)))


# =====================================================
# USER: CREATE / UPDATE / DELETE
# =====================================================

@router.post("", status_code=status.HTTP_201_CREATED)
def create_address(
    payload: AddressCreate,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    address = with_transaction(
        lambda s: address_service.create_address(s, user.id, payload.model_dump()),
        db,
    )
    return ok(serialize_address(address), message="Address created")


@router.patch("/{address_id}")
def update_address(
    address_id: str,
    payload: AddressUpdate,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    address = with_transaction(
        lambda s: address_service.update_address(
            s, user.id, address_id, payload.model_dump(exclude_unset=True)
        ),
        db,
    )
    return ok(serialize_address(address), message="Address updated successfully")


@router.delete("/{address_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_address(
    address_id: str,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    with_transaction(lambda s: address_service.delete_address(s, user.id, address_id), db)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# =====================================================
# USER: SET DEFAULT ADDRESS
# =====================================================

@router.post("/{address_id}/default")
def set_default_address(
    address_id: str,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    address = with_transaction(
        lambda s: address_service.set_default(s, user.id, address_id),
        db,
    )
    return ok(serialize_address(address), message="Default address updated")
