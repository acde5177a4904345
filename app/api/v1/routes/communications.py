"""Operator health and inbound provider webhook endpoints."""

import json

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse

from api.dependencies.rate_limits import get_limiter, provider_key_func
from infrastructure.communications import (
    AdapterConfigurationError,
    AdapterNotRegisteredError,
    ChannelType,
    InvalidPayloadError,
    SignatureVerificationError,
    UnsupportedOperationError,
    WhatsAppAdapter,
)
from infrastructure.logging import bind_request_context, get_module_logger
from infrastructure.services import CommunicationsServiceDep, get_settings

logger = get_module_logger()
router = APIRouter(prefix="/communications", tags=["Communications"])
limiter = get_limiter()


def _api_limit() -> str:
    return get_settings().server.API_RATE_LIMIT


def _webhook_limit() -> str:
    return get_settings().server.WEBHOOK_RATE_LIMIT


@router.get("/health")
@limiter.limit(_api_limit)
def get_communications_health(
    request: Request,  # pylint: disable=unused-argument
    service: CommunicationsServiceDep,
):
    """Latest health result for every live adapter instance."""
    results = service.get_health_status()
    return {
        "healthy": all(result.healthy for result in results.values()),
        "adapters": {
            adapter_id: result.model_dump(mode="json")
            for adapter_id, result in results.items()
        },
    }


@router.get("/webhooks/whatsapp/{organization_id}", response_class=PlainTextResponse)
@limiter.limit(_webhook_limit, key_func=provider_key_func)
def verify_whatsapp_subscription(
    request: Request,  # pylint: disable=unused-argument
    organization_id: str,
    service: CommunicationsServiceDep,
    hub_mode: str | None = Query(default=None, alias="hub.mode"),
    hub_verify_token: str | None = Query(default=None, alias="hub.verify_token"),
    hub_challenge: str | None = Query(default=None, alias="hub.challenge"),
):
    """Answer the WhatsApp webhook subscription handshake."""
    try:
        adapter = service.get_adapter(ChannelType.WHATSAPP, organization_id)
    except (AdapterNotRegisteredError, AdapterConfigurationError) as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    if not isinstance(adapter, WhatsAppAdapter):
        raise HTTPException(status_code=404, detail="WhatsApp adapter not available")

    try:
        challenge = adapter.verify_subscription(hub_mode, hub_verify_token, hub_challenge)
    except SignatureVerificationError as e:
        logger.warning(
            "whatsapp_subscription_rejected",
            organization_id=organization_id,
            mode=hub_mode,
        )
        raise HTTPException(status_code=403, detail=str(e)) from e
    logger.info("whatsapp_subscription_verified", organization_id=organization_id)
    return PlainTextResponse(challenge)


@router.post("/webhooks/{adapter_type}/{organization_id}")
@limiter.limit(_webhook_limit, key_func=provider_key_func)
async def receive_webhook(
    request: Request,
    adapter_type: str,
    organization_id: str,
    service: CommunicationsServiceDep,
):
    """Parse an inbound provider callback into messages and status updates.

    The raw body is passed through untouched so signatures can be checked
    against the exact bytes the provider signed.
    """
    raw_body = await request.body()
    with bind_request_context(
        correlation_id=request.headers.get("X-Correlation-ID"),
        organization_id=organization_id,
        request_path=request.url.path,
        request_method=request.method,
    ):
        try:
            payload = json.loads(raw_body or b"{}")
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning("webhook_payload_not_json", adapter_type=adapter_type)
            raise HTTPException(status_code=400, detail="Body is not valid JSON") from e

        try:
            events = service.receive_webhook(
                adapter_type,
                organization_id,
                payload,
                headers=dict(request.headers),
                raw_body=raw_body,
            )
        except (AdapterNotRegisteredError, AdapterConfigurationError) as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        except SignatureVerificationError as e:
            logger.warning(
                "webhook_signature_rejected",
                adapter_type=adapter_type,
                error=str(e),
            )
            raise HTTPException(status_code=401, detail=str(e)) from e
        except InvalidPayloadError as e:
            logger.warning(
                "webhook_payload_invalid",
                adapter_type=adapter_type,
                error=str(e),
            )
            raise HTTPException(status_code=400, detail=str(e)) from e
        except UnsupportedOperationError as e:
            raise HTTPException(status_code=405, detail=str(e)) from e

    return {
        "status": "ok",
        "messages": [m.model_dump(mode="json") for m in events.messages],
        "statuses": [s.model_dump(mode="json") for s in events.statuses],
    }
