from typing import Annotated, Any

from fastapi import APIRouter, Depends

from actionboost.api.deps import get_promo_repo, get_quota_guard
from actionboost.api.models import CodeValidateRequest, CodeValidateResponse
from actionboost.services.promo_codes import validate_code
from actionboost.services.quota_guard import QuotaGuard
from actionboost.storage.counters_repo import PromoCodeRepository

router = APIRouter()


@router.post("/validate", response_model=CodeValidateResponse, response_model_exclude_none=True)
async def validate_promo_code(
  payload: CodeValidateRequest,
  promo_repo: Annotated[PromoCodeRepository, Depends(get_promo_repo)],
  quota: Annotated[QuotaGuard, Depends(get_quota_guard)],
) -> dict[str, Any]:
  """Check a promo code without redeeming it."""
  return await validate_code(promo_repo=promo_repo, quota=quota, code=payload.code)
