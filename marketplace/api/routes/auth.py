from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from marketplace.core.audit import audit_user_action
from marketplace.core.auth_dependency import get_current_user, get_db
from marketplace.core.identity import CurrentUser
from marketplace.core.rate_limit import rate_limit
from marketplace.core.token_store import RevocationStore, get_revocation_store
from marketplace.schemas.common import MessageResponse
from marketplace.schemas.user import RegisterRequest, UserResponse
from marketplace.services import user_service
from marketplace.services.identity_provider import IdentityProviderClient, get_identity_provider_client

router = APIRouter(prefix="/auth", tags=["Auth"])


# ✅ REGISTRATION (account is created at the identity provider first)
@router.post(
    "/register",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit()), Depends(audit_user_action("REGISTER", "user"))],
)
async def register(
    payload: RegisterRequest,
    db: Session = Depends(get_db),
    client: IdentityProviderClient = Depends(get_identity_provider_client),
):
    return await user_service.register_user(db, payload.model_dump(), client)


@router.get("/me", response_model=UserResponse)
def me(current_user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
    return user_service.get_user(db, current_user.id)


# ✅ LOGOUT = revoke the presented token until it would have expired anyway
@router.post(
    "/logout",
    response_model=MessageResponse,
    dependencies=[Depends(rate_limit()), Depends(audit_user_action("LOGOUT", "user"))],
)
def logout(
    current_user: CurrentUser = Depends(get_current_user),
    store: RevocationStore = Depends(get_revocation_store),
):
    store.revoke(current_user.token)
    return {"success": True, "message": "Logged out"}
