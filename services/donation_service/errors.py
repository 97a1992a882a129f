"""
Failure taxonomy of the donation lifecycle.

Every member carries the HTTP status it maps to, so the router stays free of
try/except ladders: `donation_error_handler` renders any DonationError.
"""
from fastapi import Request, status
from fastapi.responses import JSONResponse


class DonationError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidDonationError(DonationError):
    status_code = status.HTTP_400_BAD_REQUEST


class GatewayError(DonationError):
    status_code = status.HTTP_502_BAD_GATEWAY


class SignatureInvalidError(DonationError):
    status_code = status.HTTP_400_BAD_REQUEST


class RecordNotFoundError(DonationError):
    status_code = status.HTTP_404_NOT_FOUND


class UnsupportedAmountFormatError(DonationError):
    status_code = status.HTTP_502_BAD_GATEWAY


class AuthorizationDeniedError(DonationError):
    status_code = status.HTTP_403_FORBIDDEN


class ReceiptUnavailableError(DonationError):
    status_code = status.HTTP_409_CONFLICT


class UnsupportedExportFormatError(DonationError):
    status_code = status.HTTP_400_BAD_REQUEST


class StoreError(DonationError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


async def donation_error_handler(request: Request, exc: DonationError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.message},
    )
