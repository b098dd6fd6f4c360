from pydantic import BaseModel, Field
from decimal import Decimal
from typing import Optional

from .reward import Reward

class OrderPaidEvent(BaseModel):
    order_id: str = Field(..., min_length=1)
    account_id: int
    amount: Decimal = Field(..., gt=0, description="Order total in naira")

class OrderPaidResult(BaseModel):
    order_id: str
    purchase_reward: Optional[Reward] = None
    referral_reward: Optional[Reward] = None
    # Welcome bonus for the referred buyer, issued alongside the referral reward
    referred_reward: Optional[Reward] = None
    referral_qualified: bool = False
