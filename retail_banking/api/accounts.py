"""
Account management endpoints
"""

from decimal import Decimal
from typing import Optional
from fastapi import APIRouter, Depends, status

from ..access import Session
from ..accounts import AccountKind
from ..money import to_decimal
from ..system import BankingSystem
from .auth import get_session, get_system
from .schemas import (
    AmountRequest, LinkAccountsRequest, OpenAccountRequest, TransferToSavingsRequest,
    account_to_dict, transaction_to_dict
)


router = APIRouter()


def _optional_decimal(value: Optional[str]) -> Optional[Decimal]:
    return to_decimal(value) if value is not None else None


@router.post("", status_code=status.HTTP_201_CREATED)
async def open_account(
    request: OpenAccountRequest,
    session: Session = Depends(get_session),
    system: BankingSystem = Depends(get_system)
):
    """Open an account of any kind"""
    service = system.service
    owner_id = request.owner_id or session.user.id
    interest_rate = _optional_decimal(request.interest_rate)

    if request.kind is AccountKind.CHECKING:
        account_id = service.open_checking_account(session, owner_id, request.initial_deposit)
    elif request.kind is AccountKind.SAVINGS:
        account_id = service.open_savings_account(
            session, owner_id, request.initial_deposit,
            interest_rate=interest_rate,
            daily_withdrawal_limit=_optional_decimal(request.daily_withdrawal_limit)
        )
    elif request.kind is AccountKind.STUDENT_SAVINGS:
        account_id = service.open_student_savings_account(
            session, owner_id, request.initial_deposit,
            interest_rate=interest_rate,
            daily_withdrawal_limit=_optional_decimal(request.daily_withdrawal_limit),
            single_withdrawal_limit=_optional_decimal(request.single_withdrawal_limit)
        )
    else:
        account_id = service.open_credit_account(
            session, owner_id,
            credit_limit=_optional_decimal(request.credit_limit),
            interest_rate=interest_rate,
            grace_period_days=request.grace_period_days
        )

    account = service.get_account(session, account_id)
    return {**account_to_dict(account), "message": "Account created successfully"}


@router.get("")
async def list_accounts(
    session: Session = Depends(get_session),
    system: BankingSystem = Depends(get_system)
):
    """All accounts (Admin or Banker)"""
    accounts = system.service.list_all_accounts(session)
    return {"accounts": [account_to_dict(account) for account in accounts], "count": len(accounts)}


@router.get("/{account_id}")
async def get_account(
    account_id: str,
    session: Session = Depends(get_session),
    system: BankingSystem = Depends(get_system)
):
    return account_to_dict(system.service.get_account(session, account_id))


@router.delete("/{account_id}")
async def close_account(
    account_id: str,
    session: Session = Depends(get_session),
    system: BankingSystem = Depends(get_system)
):
    """Close an account whose balance is zero"""
    system.service.close_account(session, account_id)
    return {"account_id": account_id, "message": "Account closed"}


@router.post("/{account_id}/deposit")
async def deposit(
    account_id: str,
    request: AmountRequest,
    session: Session = Depends(get_session),
    system: BankingSystem = Depends(get_system)
):
    new_balance = system.service.deposit(session, account_id, request.amount)
    return {"account_id": account_id, "balance": str(new_balance)}


@router.post("/{account_id}/withdraw")
async def withdraw(
    account_id: str,
    request: AmountRequest,
    session: Session = Depends(get_session),
    system: BankingSystem = Depends(get_system)
):
    new_balance = system.service.withdraw(session, account_id, request.amount)
    return {"account_id": account_id, "balance": str(new_balance)}


@router.post("/{account_id}/interest")
async def accrue_interest(
    account_id: str,
    session: Session = Depends(get_session),
    system: BankingSystem = Depends(get_system)
):
    """Run this month's interest for one account"""
    interest = system.service.accrue_interest(session, account_id)
    account = system.service.get_account(session, account_id)
    return {"account_id": account_id, "interest": str(interest), "balance": str(account.balance)}


@router.post("/{account_id}/transfer-to-savings")
async def transfer_to_savings(
    account_id: str,
    request: TransferToSavingsRequest,
    session: Session = Depends(get_session),
    system: BankingSystem = Depends(get_system)
):
    new_balance = system.service.transfer_to_savings(
        session, account_id, request.amount, request.savings_account_id
    )
    return {"account_id": account_id, "balance": str(new_balance)}


@router.post("/{account_id}/link")
async def link_savings(
    account_id: str,
    request: LinkAccountsRequest,
    session: Session = Depends(get_session),
    system: BankingSystem = Depends(get_system)
):
    """Link a checking account to a savings account of the same owner"""
    system.service.link_checking_and_savings(session, account_id, request.savings_account_id)
    return {
        "account_id": account_id,
        "linked_savings_id": request.savings_account_id,
        "message": "Accounts linked",
    }


@router.get("/{account_id}/transactions")
async def get_transactions(
    account_id: str,
    session: Session = Depends(get_session),
    system: BankingSystem = Depends(get_system)
):
    """Transaction history, newest first"""
    history = system.service.transaction_history(session, account_id)
    transactions = [transaction_to_dict(record) for record in history]
    return {"account_id": account_id, "transactions": transactions, "count": len(transactions)}
