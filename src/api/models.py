"""
API request and response models.

Pydantic models for FastAPI endpoint validation and OpenAPI schema generation.
JSON bodies use camelCase keys; Python attributes stay snake_case.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model mapping snake_case fields to camelCase JSON keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RequestDownloadRequest(CamelModel):
    """Request model for OTP issuance."""

    email: EmailStr
    product_id: str = Field(..., min_length=1)
    code: str | None = Field(
        None, min_length=1, description="Legacy per-user access code (optional)"
    )


class ConfirmDownloadRequest(CamelModel):
    """Request model for OTP confirmation."""

    email: EmailStr
    otp: str = Field(
        ...,
        min_length=6,
        max_length=6,
        pattern=r"^\d{6}$",
        description="6-digit one-time password",
    )
    product_id: str = Field(..., min_length=1)


class AddUserRequest(CamelModel):
    """Request model for granting a product to several emails."""

    emails: list[EmailStr] = Field(..., min_length=1)
    product_id: str = Field(..., min_length=1)


class VerifyPayRequest(CamelModel):
    """Bank webhook payload."""

    code: str = Field(..., min_length=1)
    transfer_amount: float = Field(..., gt=0, strict=True)


class PayCodeRequest(CamelModel):
    code: str = Field(..., min_length=1)


class CreatePayCodeRequest(CamelModel):
    email: EmailStr
    product_id: str = Field(..., min_length=1)
    ref_code: str | None = None


class CreateInternalUserRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1)
    ref_code: str = Field(..., min_length=1)
    role: str = Field(..., min_length=1)
    ref_percent: float


class CollaboratorPayCodesRequest(CamelModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
    month: str = Field(..., min_length=1, description="Month as YY-MM, e.g. 24-12")


class SuccessResponse(CamelModel):
    success: bool = True
    message: str


class GrantResultResponse(CamelModel):
    email: str
    status: str
    message: str
    code: str | None = None


class AddUserResponse(CamelModel):
    success: bool = True
    message: str
    results: list[GrantResultResponse]


class VerifyPayResponse(CamelModel):
    success: bool = True
    payment_code: str
    email: str
    product_id: str


class PayCodeStatusResponse(CamelModel):
    success: bool = True
    exists: bool
    used: bool


class CreatePayCodeResponse(CamelModel):
    success: bool = True
    payment_code: str
    email: str
    product_id: str
    amount: int


class InternalUserData(CamelModel):
    email: str
    ref_code: str
    role: str
    ref_percent: float
    created_at: datetime | None = None


class CreateInternalUserResponse(CamelModel):
    success: bool = True
    message: str
    data: InternalUserData


class PayCodeData(CamelModel):
    email: str
    product_id: str
    amount: int
    metadata: str
    ref_code: str | None = None
    used: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None


class CollaboratorPayCodesResponse(CamelModel):
    success: bool = True
    data: list[PayCodeData]
    count: int
    used_count: int
    month: str
    ref_code: str
    role: str
    email: str
    ref_percent: float


class ErrorResponse(BaseModel):
    """Standard error response model."""

    error: str
