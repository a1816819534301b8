"""API routes for the authenticated user's transaction history."""

from fastapi import APIRouter, Depends, HTTPException, Request

from exchange_app.dependencies import get_transaction_recorder
from exchange_app.middleware.auth import get_user_context
from exchange_app.models.exchange import ErrorResponse, TransactionRecord
from exchange_app.services.errors import StorageError
from exchange_app.services.transaction_recorder import TransactionRecorder

router = APIRouter(prefix="/api/user", tags=["user"])


@router.get(
    "/transactions",
    response_model=list[TransactionRecord],
    responses={
        401: {"description": "Missing or invalid token"},
        404: {"description": "User not found"},
    },
)
async def get_user_transactions(
    request: Request,
    recorder: TransactionRecorder = Depends(get_transaction_recorder),
) -> list[TransactionRecord]:
    """List the caller's transactions, newest first."""
    user_context = get_user_context(request)

    try:
        user_exists = await recorder.user_exists(user_context.user_id)
        transactions = await recorder.list_for_user(user_context.user_id) if user_exists else []

    except StorageError as e:
        error_response = ErrorResponse.create(
            code="STORAGE_ERROR",
            message="Transactions could not be retrieved",
            details={"error": str(e)},
        )
        raise HTTPException(status_code=500, detail=error_response.error) from e

    if not user_exists:
        error_response = ErrorResponse.create(code="USER_NOT_FOUND", message="User not found")
        raise HTTPException(status_code=404, detail=error_response.error)

    return transactions
