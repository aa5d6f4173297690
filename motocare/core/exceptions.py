from fastapi import Request
from fastapi.exceptions import HTTPException, RequestValidationError
from fastapi.responses import JSONResponse

from motocare.core.domain_exceptions import DomainException
from motocare.core.error_codes import ErrorCode
from motocare.schemas.common import APIError, APIResponse


def _error_response(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=APIResponse(
            success=False,
            error=APIError(code=code, message=message),
        ).model_dump(),
    )


_HTTP_ERROR_CODES = {
    401: ErrorCode.UNAUTHORIZED_ACTOR,
    403: ErrorCode.UNAUTHORIZED_ACTOR,
    404: ErrorCode.NOT_FOUND,
}


async def http_exception_handler(request: Request, exc: HTTPException):
    code = _HTTP_ERROR_CODES.get(exc.status_code, ErrorCode.VALIDATION_ERROR)
    return _error_response(exc.status_code, code, str(exc.detail))


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request.")
    if location:
        message = f"{location}: {message}"
    return _error_response(400, ErrorCode.VALIDATION_ERROR, message)


async def domain_exception_handler(request: Request, exc: DomainException):
    return _error_response(exc.http_status, exc.code, exc.message)
