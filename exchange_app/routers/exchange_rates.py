"""API routes for exchange rates and currency conversion."""

from fastapi import APIRouter, Depends, HTTPException, Request

from exchange_app.dependencies import (
    get_conversion_service,
    get_rate_cache_manager,
    get_transaction_recorder,
)
from exchange_app.logging_config import get_logger
from exchange_app.middleware.auth import get_user_context
from exchange_app.models.exchange import (
    ConversionResult,
    ConvertCurrencyRequest,
    ErrorResponse,
    ExchangeRatesResponse,
)
from exchange_app.services.conversion_service import ConversionService
from exchange_app.services.errors import (
    RatesUnavailableError,
    RateUnavailableError,
    StorageError,
    UnsupportedCurrencyError,
    UserNotFoundError,
)
from exchange_app.services.rate_cache import RateCacheManager
from exchange_app.services.transaction_recorder import TransactionRecorder

logger = get_logger(__name__)

router = APIRouter(prefix="/api/exchange-rates", tags=["exchange-rates"])


@router.get(
    "",
    response_model=ExchangeRatesResponse,
    responses={503: {"description": "External exchange rate service unavailable"}},
)
async def get_exchange_rates(
    rate_cache: RateCacheManager = Depends(get_rate_cache_manager),
) -> ExchangeRatesResponse:
    """Get current exchange rates for all supported currencies.

    Returns:
        Current exchange rates relative to the base currency

    Raises:
        HTTPException: 503 if no fresh or cached rates are available
    """
    try:
        rates = await rate_cache.get_exchange_rates()
    except RatesUnavailableError as e:
        error_response = ErrorResponse.create(
            code="RATES_UNAVAILABLE",
            message="Failed to fetch exchange rates",
            details={"error": str(e)},
        )
        raise HTTPException(status_code=503, detail=error_response.error) from e
    except Exception as e:
        logger.error("Unexpected error while getting exchange rates", exc_info=True)
        error_response = ErrorResponse.create(
            code="INTERNAL_ERROR",
            message="An unexpected error occurred while getting exchange rates",
            details={"error": str(e)},
        )
        raise HTTPException(status_code=500, detail=error_response.error) from e

    return ExchangeRatesResponse(base=rates.base, rates=rates.rates, timestamp=rates.timestamp)


@router.post(
    "/convert",
    response_model=ConversionResult,
    status_code=201,
    responses={
        400: {"description": "Unsupported currency"},
        401: {"description": "Missing or invalid token"},
        404: {"description": "User not found"},
        503: {"description": "Exchange rates unavailable"},
    },
)
async def convert_currency(
    conversion_request: ConvertCurrencyRequest,
    request: Request,
    conversion_service: ConversionService = Depends(get_conversion_service),
    recorder: TransactionRecorder = Depends(get_transaction_recorder),
) -> ConversionResult:
    """Convert currency and record the transaction for the authenticated user.

    Args:
        conversion_request: Conversion request with amount and currencies
        request: FastAPI request object with authentication context
        conversion_service: Conversion service
        recorder: Transaction recorder used to check the caller exists

    Returns:
        Conversion result with the recorded transaction ID

    Raises:
        HTTPException: If the user is unknown, a currency is unsupported or the conversion fails
    """
    user_context = get_user_context(request)

    try:
        if not await recorder.user_exists(user_context.user_id):
            raise UserNotFoundError(user_context.user_id)

        return await conversion_service.convert(
            user_id=user_context.user_id,
            from_currency=conversion_request.from_currency,
            to_currency=conversion_request.to_currency,
            amount=conversion_request.amount,
        )

    except UnsupportedCurrencyError as e:
        error_response = ErrorResponse.create(
            code="UNSUPPORTED_CURRENCY",
            message=str(e),
            details={
                "supported_currencies": ", ".join(conversion_service.get_supported_currencies())
            },
        )
        raise HTTPException(status_code=400, detail=error_response.error) from e

    except UserNotFoundError as e:
        error_response = ErrorResponse.create(code="USER_NOT_FOUND", message="User not found")
        raise HTTPException(status_code=404, detail=error_response.error) from e

    except RatesUnavailableError as e:
        error_response = ErrorResponse.create(
            code="RATES_UNAVAILABLE",
            message="Exchange rates are currently unavailable",
            details={"error": str(e)},
        )
        raise HTTPException(status_code=503, detail=error_response.error) from e

    except RateUnavailableError as e:
        error_response = ErrorResponse.create(
            code="RATE_UNAVAILABLE",
            message=str(e),
            details={"currency": e.currency_code},
        )
        raise HTTPException(status_code=500, detail=error_response.error) from e

    except StorageError as e:
        error_response = ErrorResponse.create(
            code="STORAGE_ERROR",
            message="The conversion could not be recorded",
            details={"error": str(e)},
        )
        raise HTTPException(status_code=500, detail=error_response.error) from e

    except Exception as e:
        logger.error("Unexpected error during conversion", exc_info=True)
        error_response = ErrorResponse.create(
            code="CONVERSION_ERROR",
            message="An unexpected error occurred during conversion",
            details={"error": str(e)},
        )
        raise HTTPException(status_code=500, detail=error_response.error) from e
