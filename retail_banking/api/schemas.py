"""
Pydantic schemas for API requests and responses
"""

from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field

from ..accounts import Account, AccountKind
from ..ledger import TransactionRecord
from ..users import Role, User


class LoginRequest(BaseModel):
    username: str
    password: str


# User schemas
class CreateUserRequest(BaseModel):
    username: str
    password: str
    role: Role = Role.CLIENT


class ChangeRoleRequest(BaseModel):
    role: Role


# Account schemas
class OpenAccountRequest(BaseModel):
    kind: AccountKind
    owner_id: Optional[str] = Field(None, description="Defaults to the logged-in user")
    initial_deposit: str = Field("0", description="Decimal amount as string")
    interest_rate: Optional[str] = Field(None, description="Annual rate as a fraction, e.g. 0.03")
    daily_withdrawal_limit: Optional[str] = None
    single_withdrawal_limit: Optional[str] = None
    credit_limit: Optional[str] = None
    grace_period_days: Optional[int] = Field(None, ge=0)


class AmountRequest(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")


class TransferRequest(BaseModel):
    from_account_id: str
    to_account_id: str
    amount: str = Field(..., description="Decimal amount as string")


class TransferToSavingsRequest(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")
    savings_account_id: Optional[str] = Field(None, description="Defaults to the linked account")


class LinkAccountsRequest(BaseModel):
    savings_account_id: str


# Clock schemas
class EnableSimulationRequest(BaseModel):
    start: Optional[datetime] = Field(None, description="Defaults to the current time")


class AdvanceTimeRequest(BaseModel):
    days: int = Field(..., ge=0)


def user_to_dict(user: User) -> Dict[str, Any]:
    return {
        "user_id": user.id,
        "username": user.username,
        "role": user.role.value,
        "created_at": user.created_at.isoformat(),
    }


def account_to_dict(account: Account) -> Dict[str, Any]:
    result = {
        "account_id": account.id,
        "owner_id": account.owner_id,
        "kind": account.kind.value,
        "account_type": account.account_type,
        "balance": str(account.balance),
        "opened_at": account.created_at.isoformat(),
    }
    if account.interest_rate is not None:
        result["interest_rate"] = str(account.interest_rate)
    if account.daily_withdrawal_limit is not None:
        result["daily_withdrawal_limit"] = str(account.daily_withdrawal_limit)
    if account.single_withdrawal_limit is not None:
        result["single_withdrawal_limit"] = str(account.single_withdrawal_limit)
    if account.is_credit:
        result["credit_limit"] = str(account.credit_limit)
        result["available_credit"] = str(account.available_credit)
        result["grace_period_end"] = account.grace_period_end.isoformat()
    if account.linked_savings_id:
        result["linked_savings_id"] = account.linked_savings_id
    return result


def transaction_to_dict(record: TransactionRecord) -> Dict[str, Any]:
    return {
        "transaction_id": record.id,
        "account_id": record.account_id,
        "timestamp": record.timestamp.isoformat(),
        "type": record.kind,
        "amount": str(record.amount),
        "new_balance": str(record.new_balance),
    }
