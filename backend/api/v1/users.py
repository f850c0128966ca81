from typing import Any, Dict
from fastapi import APIRouter, Depends
from api.dependencies import get_current_user
from schemas.user_schema import UserPublic
from utils.responses import envelope, no_store_json
from utils.timing import timeit

router = APIRouter()

@router.get("/profile")
@router.get("/me", include_in_schema=False)
@timeit("GET /profile")
async def read_profile(current_user: Dict[str, Any] = Depends(get_current_user)):
    # The guard already loaded the user without sensitive fields
    user = UserPublic.from_document(current_user).model_dump(by_alias=True, mode="json")
    return no_store_json(envelope(True, "Profile fetched successfully", data={"user": user}))
