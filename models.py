from pydantic import BaseModel, Field, validator
from dataclasses import dataclass
from typing import Literal, Optional
from datetime import datetime
from decimal import Decimal


# Domain records

@dataclass(frozen=True)
class Account:
    account_id: str
    balance: Decimal

    def __post_init__(self):
        if not self.account_id:
            raise ValueError("Account id cannot be empty")
        if self.balance < 0:
            raise ValueError("Balance cannot be negative")


@dataclass(frozen=True)
class Transfer:
    """A single request to move ``amount`` from one account to another.

    Validation lives in the service, which does not trust upstream checks.
    """
    account_from: str
    account_to: str
    amount: Decimal


@dataclass(frozen=True)
class TransferResult:
    transfer_id: str
    account_from: Account
    account_to: Account
    amount: Decimal
    timestamp: datetime


# API schemas

class AccountCreateRequest(BaseModel):
    accountId: str = Field(
        ...,
        min_length=1,
        description="Account identifier"
    )
    balance: Decimal = Field(..., description="Initial account balance")

    @validator('balance')
    def validate_balance(cls, v):
        if v <= 0:
            raise ValueError('Initial balance must be positive')
        return v


class TransferRequest(BaseModel):
    accountFrom: str = Field(
        ...,
        min_length=1,
        description="Account to debit"
    )
    accountTo: str = Field(
        ...,
        min_length=1,
        description="Account to credit"
    )
    amount: Decimal = Field(..., description="Amount to transfer")

    @validator('amount')
    def validate_amount(cls, v):
        if v <= 0:
            raise ValueError('Amount must be positive number.')
        return v

    def to_transfer(self) -> Transfer:
        return Transfer(
            account_from=self.accountFrom,
            account_to=self.accountTo,
            amount=self.amount,
        )


class AccountResponse(BaseModel):
    accountId: str = Field(..., description="Account identifier")
    balance: Decimal = Field(..., description="Current account balance")

    class Config:
        json_encoders = {
            Decimal: str,
        }

    @classmethod
    def from_account(cls, account: Account) -> "AccountResponse":
        return cls(accountId=account.account_id, balance=account.balance)


class TransferResponse(BaseModel):
    transferId: str = Field(..., description="Unique transfer identifier")
    status: Literal["completed"] = Field(..., description="Transfer status")
    accountFrom: AccountResponse = Field(..., description="Debited account after transfer")
    accountTo: AccountResponse = Field(..., description="Credited account after transfer")
    amount: Decimal = Field(..., description="Amount transferred")
    timestamp: datetime = Field(..., description="Transfer timestamp")

    class Config:
        json_encoders = {
            Decimal: str,
            datetime: lambda v: v.isoformat()
        }

    @classmethod
    def from_result(cls, result: TransferResult) -> "TransferResponse":
        return cls(
            transferId=result.transfer_id,
            status="completed",
            accountFrom=AccountResponse.from_account(result.account_from),
            accountTo=AccountResponse.from_account(result.account_to),
            amount=result.amount,
            timestamp=result.timestamp,
        )


class ErrorResponse(BaseModel):
    detail: str = Field(..., description="Error description")
    error_code: str = Field(..., description="Machine-readable error code")
    side: Optional[str] = Field(None, description="Transfer leg that failed, if any")
    timestamp: datetime = Field(default_factory=datetime.now, description="Error timestamp")


class HealthResponse(BaseModel):
    status: str = Field(..., description="Service health status")
    timestamp: datetime = Field(default_factory=datetime.now)
    accounts_count: int = Field(..., description="Number of accounts in system")
