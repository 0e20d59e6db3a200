"""
API v1 routes.

Defines REST endpoints for OTP-gated downloads, pay codes and internal users.

Handlers are plain functions so FastAPI runs the blocking storage and
email calls in its threadpool.
"""

from fastapi import APIRouter, Depends, Response, status

from src.api.dependencies import (
    get_client_ip,
    get_collaborator_report_service,
    get_download_service,
    get_entitlement_service,
    get_internal_user_service,
    get_payment_service,
    require_api_key,
    require_webhook_key,
)
from src.api.models import (
    AddUserRequest,
    AddUserResponse,
    CollaboratorPayCodesRequest,
    CollaboratorPayCodesResponse,
    ConfirmDownloadRequest,
    CreateInternalUserRequest,
    CreateInternalUserResponse,
    CreatePayCodeRequest,
    CreatePayCodeResponse,
    ErrorResponse,
    GrantResultResponse,
    InternalUserData,
    PayCodeData,
    PayCodeRequest,
    PayCodeStatusResponse,
    RequestDownloadRequest,
    SuccessResponse,
    VerifyPayRequest,
    VerifyPayResponse,
)
from src.domain.downloads import DownloadService
from src.domain.entitlements import EntitlementService
from src.domain.internal_users import CollaboratorReportService, InternalUserService
from src.domain.payments import PaymentService

router = APIRouter(tags=["v1"])

_validation_error = {"model": ErrorResponse, "description": "Validation error"}
_rate_limited = {"model": ErrorResponse, "description": "Rate limit exceeded"}
_unauthorized = {"model": ErrorResponse, "description": "Invalid API key"}


@router.post(
    "/request-download",
    response_model=SuccessResponse,
    responses={
        400: _validation_error,
        401: {"model": ErrorResponse, "description": "No access to this product"},
        429: _rate_limited,
        500: {"model": ErrorResponse, "description": "OTP email could not be sent"},
    },
    summary="Request a download OTP",
    description="Check access to the product and email a 6-digit one-time password.",
)
def request_download(
    request_data: RequestDownloadRequest,
    ip_address: str = Depends(get_client_ip),
    service: DownloadService = Depends(get_download_service),
) -> SuccessResponse:
    """
    Send a download OTP.

    - **email**: Address the product was granted to
    - **productId**: Catalog product identifier
    - **code**: Legacy access code (optional)
    """
    service.request_download(
        request_data.email,
        request_data.product_id,
        ip_address,
        access_code=request_data.code,
    )
    return SuccessResponse(message="OTP has been sent to your email")


@router.post(
    "/confirm-download",
    response_class=Response,
    responses={
        200: {
            "content": {"application/octet-stream": {}},
            "description": "The protected file",
        },
        400: _validation_error,
        401: {"model": ErrorResponse, "description": "Invalid, used or expired OTP"},
        404: {"model": ErrorResponse, "description": "File not found"},
        429: _rate_limited,
    },
    summary="Confirm OTP and download",
    description="Validate the OTP and return the protected file as an attachment.",
)
def confirm_download(
    request_data: ConfirmDownloadRequest,
    ip_address: str = Depends(get_client_ip),
    service: DownloadService = Depends(get_download_service),
) -> Response:
    asset = service.confirm_download(
        request_data.email, request_data.otp, request_data.product_id, ip_address
    )
    return Response(
        content=asset.content,
        media_type=asset.media_type,
        headers={"Content-Disposition": f'attachment; filename="{asset.filename}"'},
    )


@router.post(
    "/add-user",
    response_model=AddUserResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(require_api_key)],
    responses={400: _validation_error, 401: _unauthorized},
    summary="Grant a product to users",
)
def add_user(
    request_data: AddUserRequest,
    service: EntitlementService = Depends(get_entitlement_service),
) -> AddUserResponse:
    """Create users or add the product to existing ones. Requires x-api-key."""
    results = service.add_users(list(request_data.emails), request_data.product_id)
    return AddUserResponse(
        message="Users processed successfully",
        results=[
            GrantResultResponse(
                email=result.email,
                status=result.status.value,
                message=result.message,
                code=result.code,
            )
            for result in results
        ],
    )


@router.post(
    "/create-pay-code",
    response_model=CreatePayCodeResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: _validation_error,
        409: {"model": ErrorResponse, "description": "Email already has access"},
        429: _rate_limited,
    },
    summary="Create a payment code",
    description="Issue a payment code to be used as the bank transfer reference.",
)
def create_pay_code(
    request_data: CreatePayCodeRequest,
    ip_address: str = Depends(get_client_ip),
    service: PaymentService = Depends(get_payment_service),
) -> CreatePayCodeResponse:
    issued = service.create_pay_code(
        request_data.email,
        request_data.product_id,
        ip_address,
        ref_code=request_data.ref_code,
    )
    return CreatePayCodeResponse(
        payment_code=issued.payment_code,
        email=issued.email,
        product_id=issued.product_id,
        amount=issued.amount,
    )


@router.post(
    "/verify-pay",
    response_model=VerifyPayResponse,
    dependencies=[Depends(require_webhook_key)],
    responses={
        400: _validation_error,
        401: _unauthorized,
        404: {"model": ErrorResponse, "description": "Payment code not found"},
    },
    summary="Payment webhook",
    description="Consume a payment code for a reported bank transfer and grant the product.",
)
def verify_pay(
    request_data: VerifyPayRequest,
    service: PaymentService = Depends(get_payment_service),
) -> VerifyPayResponse:
    verified = service.verify_payment(request_data.code, request_data.transfer_amount)
    return VerifyPayResponse(
        payment_code=verified.pay_code_id,
        email=verified.email,
        product_id=verified.product_id,
    )


@router.post(
    "/check-pay-code",
    response_model=PayCodeStatusResponse,
    responses={
        400: _validation_error,
        404: {"model": ErrorResponse, "description": "Payment code not found"},
    },
    summary="Check a payment code",
)
def check_pay_code(
    request_data: PayCodeRequest,
    service: PaymentService = Depends(get_payment_service),
) -> PayCodeStatusResponse:
    result = service.check_pay_code(request_data.code)
    return PayCodeStatusResponse(exists=result.exists, used=result.used)


@router.post(
    "/create-internal-user",
    response_model=CreateInternalUserResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_api_key)],
    responses={
        400: _validation_error,
        401: _unauthorized,
        409: {"model": ErrorResponse, "description": "Email or refCode already in use"},
    },
    summary="Create an internal user",
)
def create_internal_user(
    request_data: CreateInternalUserRequest,
    service: InternalUserService = Depends(get_internal_user_service),
) -> CreateInternalUserResponse:
    """Create an admin or collaborator account. Requires x-api-key."""
    record = service.create(
        request_data.email,
        request_data.password,
        request_data.ref_code,
        request_data.role,
        request_data.ref_percent,
    )
    return CreateInternalUserResponse(
        message="Internal user created successfully",
        data=InternalUserData(
            email=record.email,
            ref_code=record.ref_code,
            role=record.role.value,
            ref_percent=record.ref_percent,
            created_at=record.created_at,
        ),
    )


@router.post(
    "/get-paycode-by-collaborators",
    response_model=CollaboratorPayCodesResponse,
    responses={
        400: _validation_error,
        401: {"model": ErrorResponse, "description": "Invalid email or password"},
        429: _rate_limited,
    },
    summary="List a month's pay codes",
    description="Admins see every pay code created in the month; "
    "collaborators see the ones carrying their refCode.",
)
def get_paycode_by_collaborators(
    request_data: CollaboratorPayCodesRequest,
    ip_address: str = Depends(get_client_ip),
    service: CollaboratorReportService = Depends(get_collaborator_report_service),
) -> CollaboratorPayCodesResponse:
    report = service.pay_codes_for_month(
        request_data.email, request_data.password, request_data.month, ip_address
    )
    return CollaboratorPayCodesResponse(
        data=[
            PayCodeData(
                email=pay_code.email,
                product_id=pay_code.product_id,
                amount=pay_code.amount,
                metadata=pay_code.metadata,
                ref_code=pay_code.ref_code,
                used=pay_code.used,
                created_at=pay_code.created_at,
                updated_at=pay_code.updated_at,
            )
            for pay_code in report.pay_codes
        ],
        count=report.count,
        used_count=report.used_count,
        month=report.month,
        ref_code=report.ref_code,
        role=report.role.value,
        email=report.email,
        ref_percent=report.ref_percent,
    )
