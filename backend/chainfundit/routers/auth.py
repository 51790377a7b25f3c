from fastapi import APIRouter, Depends
from chainfundit.core.deps import get_current_user
from chainfundit.models.user import User
from chainfundit.schemas.auth import MeResponse

router = APIRouter(prefix="/api/auth", tags=["auth"])

@router.get("/me", response_model=MeResponse)
async def me(user: User = Depends(get_current_user)):
    return MeResponse(
        id=str(user.id),
        email=user.email,
        full_name=user.full_name,
        role=user.role.value if user.role else "user",
        account_verified=bool(user.account_verified),
        international_account_verified=bool(user.international_account_verified),
    )
