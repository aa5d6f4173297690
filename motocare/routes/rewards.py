from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from motocare.db.session import get_db
from motocare.routes.deps import get_caller
from motocare.schemas.common import APIResponse
from motocare.schemas.reward import RewardSummaryResponse
from motocare.services.appointment_status import Caller
from motocare.services.reward_service import get_reward_summary

router = APIRouter(prefix="/rewards", tags=["rewards"])


@router.get("/me", response_model=APIResponse[RewardSummaryResponse])
def my_rewards(
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
):
    summary = get_reward_summary(db=db, user_id=caller.user_id)
    return APIResponse(success=True, data=RewardSummaryResponse.model_validate(summary))
