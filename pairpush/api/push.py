"""Device registration and push dispatch endpoints."""

import logging

from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import JSONResponse

from pairpush.dependencies import get_dispatcher, get_registrar, verify_token
from pairpush.exceptions import TokenStoreError, ValidationError
from pairpush.models.push import (
    DeviceRegisterRequest,
    DispatchResponse,
    PushRequest,
    RegisterResponse,
)
from pairpush.services.push_notifications import PushDispatcher
from pairpush.services.registrar import DeviceRegistrar
from pairpush.utils.error_handling import error_response, log_context

logger = logging.getLogger(__name__)

registrar_router = APIRouter(tags=["registrar"])
dispatcher_router = APIRouter(tags=["dispatcher"])


def _preflight() -> Response:
    return Response(status_code=status.HTTP_200_OK)


@registrar_router.options("/register-device", include_in_schema=False)
async def register_device_preflight() -> Response:
    """CORS preflight without an Origin header (the middleware answers the rest)."""
    return _preflight()


@registrar_router.post("/register-device", response_model=RegisterResponse)
async def register_device(
    request: DeviceRegisterRequest,
    registrar: DeviceRegistrar = Depends(get_registrar),
    _: None = Depends(verify_token),
) -> RegisterResponse | JSONResponse:
    """
    Register or refresh a device push token for a user.

    Called by the mobile app on start and whenever the provider rotates
    its token. Re-registering the same (userId, token) pair only updates
    the metadata and timestamp.
    """
    try:
        await registrar.register(
            user_id=request.user_id,
            token=request.token,
            device_info=request.device_info,
        )
        return RegisterResponse()

    except ValidationError as e:
        logger.warning("Device registration validation failed", extra={"error": e.message})
        return error_response(e, status.HTTP_400_BAD_REQUEST)

    except TokenStoreError as e:
        logger.error(
            "Error upserting device token",
            extra={"user_id": request.user_id, "error": e.message, **log_context(e)},
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Failed to save device token"},
        )

    except Exception as e:
        logger.exception(
            "Error in register-device",
            extra={"user_id": request.user_id, **log_context(e)},
        )
        return error_response(e, status.HTTP_500_INTERNAL_SERVER_ERROR)


@dispatcher_router.options("/send-push", include_in_schema=False)
async def send_push_preflight() -> Response:
    """CORS preflight without an Origin header (the middleware answers the rest)."""
    return _preflight()


@dispatcher_router.post(
    "/send-push",
    response_model=DispatchResponse,
    response_model_exclude_none=True,
)
async def send_push(
    request: PushRequest,
    dispatcher: PushDispatcher = Depends(get_dispatcher),
    _: None = Depends(verify_token),
) -> DispatchResponse | JSONResponse:
    """
    Send a push notification to every device of the recipient.

    Per-device failures are counted in ``failed`` and logged; they do not
    change the status code. A recipient without devices is not an error.
    """
    try:
        summary = await dispatcher.dispatch(request)

    except ValidationError as e:
        logger.warning("Push request validation failed", extra={"error": e.message})
        return error_response(e, status.HTTP_400_BAD_REQUEST)

    except TokenStoreError as e:
        logger.error(
            "Error fetching tokens",
            extra={"recipient_id": request.recipient_id, "error": e.message, **log_context(e)},
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Failed to fetch tokens"},
        )

    except Exception as e:
        logger.exception(
            "send-push error",
            extra={"recipient_id": request.recipient_id, **log_context(e)},
        )
        return error_response(e, status.HTTP_500_INTERNAL_SERVER_ERROR)

    if summary.sent_to == 0:
        return DispatchResponse(message="No device tokens found for user", sent_to=0)

    return DispatchResponse(
        sent_to=summary.sent_to,
        succeeded=summary.succeeded,
        failed=summary.failed,
    )
