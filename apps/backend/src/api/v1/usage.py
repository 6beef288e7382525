from fastapi import APIRouter

from dependencies.context import RequestContextDep
from schemas.api import ApiResponse
from services.usage import UsageMeterDep, UsageStats


router = APIRouter(prefix="/usage", tags=["usage"])


@router.get("/stats", response_model=ApiResponse[UsageStats])
def get_usage_stats(
    context: RequestContextDep, meter: UsageMeterDep
) -> ApiResponse[UsageStats]:
    """Today's usage for the calling user; remaining is null when unlimited."""
    return ApiResponse(data=meter.get_stats(context.user_id))
