from datetime import datetime

from pydantic import BaseModel, ConfigDict

from motocare.core.enums import RewardType


class RewardTransactionItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    appointment_id: int | None = None
    type: RewardType
    points: int
    note: str | None = None
    created_at: datetime


class RewardBalanceResponse(BaseModel):
    balance: int
    earned: int
    redeemed: int


class RewardSummaryResponse(RewardBalanceResponse):
    transactions: list[RewardTransactionItem] = []
