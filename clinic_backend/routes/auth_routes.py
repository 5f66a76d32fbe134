from fastapi import APIRouter, Depends

from clinic_backend.auth.dependencies import Principal, get_current_principal

router = APIRouter(tags=['auth'])


@router.get("/me")
def me(principal: Principal = Depends(get_current_principal)):
    return {"user_id": principal.user_id, "role": principal.role.value}
