"""User address book and checkout address validation."""
import logging
import uuid
from typing import Mapping, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.errors import DuplicateDefaultAddress, InvalidAddress, NotFound, ValidationError
from storefront.models import Address, AddressType

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("full_name", "address_line1", "city", "postal_code", "country")
ADDRESS_FIELDS = (
    "full_name",
    "phone",
    "address_line1",
    "address_line2",
    "city",
    "state",
    "postal_code",
    "country",
)
EDITABLE_FIELDS = ADDRESS_FIELDS + ("label", "address_type")


# =====================================================
# VALIDATION
# =====================================================

def validate_address(data: Mapping) -> dict:
    """
    Normalise an address mapping into the stored snapshot shape.

    Raises ``InvalidAddress`` naming every missing required field.
    """
    address = {}
    for name in ADDRESS_FIELDS:
        value = data.get(name)
        if isinstance(value, str):
            value = value.strip() or None
        address[name] = value

    missing = [name for name in REQUIRED_FIELDS if not address.get(name)]
    if missing:
        raise InvalidAddress(missing)
    return address


def address_snapshot(address: Address) -> dict:
    return {name: getattr(address, name) for name in ADDRESS_FIELDS}


def _check_type(address_type: str) -> str:
    if address_type not in (AddressType.shipping.value, AddressType.billing.value):
        raise ValidationError(f"Invalid address type: {address_type}")
    return address_type


# =====================================================
# QUERIES
# =====================================================

def list_addresses(db: Session, user_id) -> list[Address]:
    return list(
        db.scalars(
            select(Address)
            .where(Address.user_id == user_id)
            .order_by(Address.is_default.desc(), Address.created_at.desc())
        )
    )


def get_address(db: Session, user_id, address_id) -> Address:
    try:
        address_uuid = uuid.UUID(str(address_id))
    except ValueError:
        raise NotFound("Address not found")

    address = db.scalar(
        select(Address).where(Address.id == address_uuid, Address.user_id == user_id)
    )
    if not address:
        raise NotFound("Address not found")
    return address


# =====================================================
# WRITES
# =====================================================

def _make_default(db: Session, address: Address) -> None:
    db.execute(
        update(Address)
        .where(
            Address.user_id == address.user_id,
            Address.address_type == address.address_type,
            Address.id != address.id,
            Address.is_default.is_(True),
        )
        .values(is_default=False)
        .execution_options(synchronize_session="fetch")
    )
    address.is_default = True
    _flush(db)


def _flush(db: Session) -> None:
    try:
        db.flush()
    except IntegrityError as exc:
        # Lost a race against another default for the same (user, type)
        raise DuplicateDefaultAddress("Another default address was set concurrently") from exc


def create_address(db: Session, user_id, data: Mapping) -> Address:
    fields = validate_address(data)
    address_type = _check_type(data.get("address_type") or AddressType.shipping.value)

    has_default = db.scalar(
        select(Address.id).where(
            Address.user_id == user_id,
            Address.address_type == address_type,
            Address.is_default.is_(True),
        )
    )

    address = Address(
        id=uuid.uuid4(),
        user_id=user_id,
        address_type=address_type,
        label=data.get("label"),
        is_default=False,
        **fields,
    )
    db.add(address)
    _flush(db)

    # First address of a type becomes the default
    if data.get("is_default") or not has_default:
        _make_default(db, address)

    return address


def update_address(db: Session, user_id, address_id, data: Mapping) -> Address:
    address = get_address(db, user_id, address_id)

    changes = {k: v for k, v in data.items() if k in EDITABLE_FIELDS}
    if not changes and "is_default" not in data:
        raise ValidationError("No fields provided for update")

    if "address_type" in changes:
        _check_type(changes["address_type"])

    merged = {name: getattr(address, name) for name in ADDRESS_FIELDS}
    merged.update({k: v for k, v in changes.items() if k in ADDRESS_FIELDS})
    fields = validate_address(merged)

    for name, value in fields.items():
        setattr(address, name, value)
    if "label" in changes:
        address.label = changes["label"]
    if "address_type" in changes and changes["address_type"] != address.address_type:
        address.address_type = changes["address_type"]
        address.is_default = False
    _flush(db)

    if data.get("is_default"):
        _make_default(db, address)
    return address


def set_default(db: Session, user_id, address_id) -> Address:
    address = get_address(db, user_id, address_id)
    _make_default(db, address)
    logger.info("Default address updated", extra={"address_id": str(address.id)})
    return address


def delete_address(db: Session, user_id, address_id) -> None:
    address = get_address(db, user_id, address_id)
    was_default = address.is_default
    address_type = address.address_type

    db.delete(address)
    db.flush()

    # Promote the newest remaining address of the same type
    if was_default:
        replacement: Optional[Address] = db.scalar(
            select(Address)
            .where(Address.user_id == user_id, Address.address_type == address_type)
            .order_by(Address.created_at.desc())
            .limit(1)
        )
        if replacement:
            _make_default(db, replacement)
