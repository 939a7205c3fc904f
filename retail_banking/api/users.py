"""
User administration endpoints
"""

from fastapi import APIRouter, Depends, status

from ..access import Session
from ..system import BankingSystem
from .auth import get_session, get_system
from .schemas import ChangeRoleRequest, CreateUserRequest, account_to_dict, user_to_dict


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_user(
    request: CreateUserRequest,
    session: Session = Depends(get_session),
    system: BankingSystem = Depends(get_system)
):
    """Register a user (Admin only)"""
    user = system.service.register_user(session, request.username, request.password, request.role)
    return {**user_to_dict(user), "message": "User created successfully"}


@router.get("")
async def list_users(
    session: Session = Depends(get_session),
    system: BankingSystem = Depends(get_system)
):
    users = system.service.list_users(session)
    return {"users": [user_to_dict(user) for user in users], "count": len(users)}


@router.put("/{username}/role")
async def change_role(
    username: str,
    request: ChangeRoleRequest,
    session: Session = Depends(get_session),
    system: BankingSystem = Depends(get_system)
):
    system.service.change_user_role(session, username, request.role)
    return {"username": username, "role": request.role.value, "message": "Role updated"}


@router.delete("/{username}")
async def delete_user(
    username: str,
    session: Session = Depends(get_session),
    system: BankingSystem = Depends(get_system)
):
    system.service.delete_user(session, username)
    return {"username": username, "message": "User deleted"}


@router.get("/{user_id}/accounts")
async def get_user_accounts(
    user_id: str,
    session: Session = Depends(get_session),
    system: BankingSystem = Depends(get_system)
):
    """Accounts owned by a user, in opening order"""
    accounts = system.service.get_user_accounts(session, user_id)
    return {
        "user_id": user_id,
        "accounts": [account_to_dict(account) for account in accounts],
        "count": len(accounts),
    }
