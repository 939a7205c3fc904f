"""
Transfer and interest-run endpoints
"""

from fastapi import APIRouter, Depends

from ..access import Session
from ..system import BankingSystem
from .auth import get_session, get_system
from .schemas import TransferRequest


router = APIRouter()


@router.post("/transfers")
async def transfer(
    request: TransferRequest,
    session: Session = Depends(get_session),
    system: BankingSystem = Depends(get_system)
):
    """Move money between two accounts"""
    new_balance = system.service.transfer(
        session, request.from_account_id, request.to_account_id, request.amount
    )
    return {
        "from_account_id": request.from_account_id,
        "to_account_id": request.to_account_id,
        "amount": request.amount,
        "from_balance": str(new_balance),
        "message": "Transfer completed",
    }


@router.post("/interest/run")
async def run_monthly_interest(
    session: Session = Depends(get_session),
    system: BankingSystem = Depends(get_system)
):
    """Accrue this month's interest on every account (Admin or Banker)"""
    results = system.service.run_monthly_interest(session)
    return {
        "results": {account_id: str(interest) for account_id, interest in results.items()},
        "accounts_processed": len(results),
        "run_at": system.service.current_time().isoformat(),
    }
