from fastapi import HTTPException, status

from offerwheel_api.services.errors import LimitReachedError, PromotionError, TransientInfraError

# Typed-result error codes that do not come from a raised PromotionError.
ERROR_CODE_STATUS = {
    "customer_not_found": status.HTTP_404_NOT_FOUND,
    "user_not_found": status.HTTP_404_NOT_FOUND,
    "manager_not_found": status.HTTP_404_NOT_FOUND,
    "task_not_found": status.HTTP_404_NOT_FOUND,
    "not_found": status.HTTP_404_NOT_FOUND,
    "tenant_mismatch": status.HTTP_404_NOT_FOUND,
    "wrong_tenant": status.HTTP_404_NOT_FOUND,
    "manager_inactive": status.HTTP_403_FORBIDDEN,
    "no_prior_spin": status.HTTP_403_FORBIDDEN,
    "already_verified": status.HTTP_409_CONFLICT,
    "comment_required": status.HTTP_422_UNPROCESSABLE_ENTITY,
    LimitReachedError.code: LimitReachedError.status_code,
    "expired": status.HTTP_410_GONE,
    "redeemed": status.HTTP_409_CONFLICT,
    TransientInfraError.code: TransientInfraError.status_code,
}


def promotion_http_error(exc: PromotionError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.message)


def result_http_error(code: str | None, detail: object) -> HTTPException:
    return HTTPException(
        status_code=ERROR_CODE_STATUS.get(code or "", status.HTTP_400_BAD_REQUEST),
        detail=detail,
    )
