from fastapi import APIRouter, Depends

from app.api import deps
from app.models.contracts import CreditBalance
from app.services import ledger
from app.store.base import Store

router = APIRouter(tags=["credits"])


@router.get("/credits", response_model=CreditBalance)
async def get_credits(
    user_id: str = Depends(deps.current_user), store: Store = Depends(deps.store)
) -> CreditBalance:
    return CreditBalance(user_id=user_id, balance=await ledger.get_balance(store, user_id))
