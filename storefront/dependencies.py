import logging
import uuid

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from storefront import config
from storefront.database import get_db
from storefront.errors import AuthenticationError, Forbidden
from storefront.models import Profile, Role
from storefront.security import decode_token, get_token_from_request

logger = logging.getLogger(__name__)


def _parse_uuid(value) -> uuid.UUID:
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        raise AuthenticationError("Invalid token payload")


def _direct_login_user_id(request: Request):
    if not config.DIRECT_LOGIN_ENABLED:
        return None
    user_id = request.headers.get(config.DIRECT_LOGIN_HEADER)
    if user_id:
        logger.warning("Direct login used", extra={"user_id": user_id})
    return user_id


# =========================
# CURRENT USER
# =========================
def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
) -> Profile:
    user_id = _direct_login_user_id(request)

    if not user_id:
        token = get_token_from_request(request)
        if not token:
            raise AuthenticationError("Not authenticated")

        payload = decode_token(token)
        if not payload:
            raise AuthenticationError("Invalid or expired token")

        user_id = payload.get("sub")
        if not user_id:
            raise AuthenticationError("Invalid token payload")

    user = db.get(Profile, _parse_uuid(user_id))
    if not user or not user.is_active:
        raise AuthenticationError("User not found or inactive")

    return user


# =========================
# ROLE GUARDS
# =========================
def require_staff(user: Profile = Depends(get_current_user)) -> Profile:
    """Sellers and admins."""
    if user.role not in (Role.seller.value, Role.admin.value):
        raise Forbidden("Seller or admin access required")
    return user


def require_admin(user: Profile = Depends(get_current_user)) -> Profile:
    if not user.is_admin:
        raise Forbidden("Admin access required")
    return user
