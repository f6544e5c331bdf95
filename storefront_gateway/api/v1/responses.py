"""Translate orchestrator results into HTTP responses"""

from fastapi.responses import JSONResponse

from storefront_gateway.api.v1.schemas import TransactionResponse
from storefront_gateway.domain.exceptions import ErrorCode
from storefront_gateway.services.results import TransactionResult

ERROR_STATUS = {
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.INVALID_STATE: 409,
    ErrorCode.ALREADY_COMPLETED: 409,
    ErrorCode.ALREADY_REJECTED: 409,
    ErrorCode.PRODUCT_UNAVAILABLE: 409,
    ErrorCode.EXPIRED: 410,
    ErrorCode.RISK_REJECTED: 403,
    ErrorCode.NOT_OWNER: 403,
    ErrorCode.INSUFFICIENT_BALANCE: 422,
    ErrorCode.INVALID_POINTS: 422,
    ErrorCode.INVALID_AMOUNT: 422,
    ErrorCode.STORE_UNAVAILABLE: 503,
    ErrorCode.COLLABORATOR_UNAVAILABLE: 503,
}


def to_response(result: TransactionResult, success_status: int = 200) -> JSONResponse:
    body = TransactionResponse.from_result(result).model_dump(mode="json")
    if result.success:
        return JSONResponse(status_code=success_status, content=body)
    return JSONResponse(status_code=ERROR_STATUS.get(result.error, 500), content=body)
