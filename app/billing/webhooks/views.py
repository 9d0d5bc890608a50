"""
Webhook endpoint view for Razorpay.

The gateway retries any non-2xx answer, so the view answers:
- 200 {"status": "ok"}: applied, duplicate, or acknowledged after a failure
- 400: signature missing or invalid
- 503: database unavailable, the event was not applied or marked

Usage:
    # In urls.py
    from billing.webhooks.views import razorpay_webhook

    urlpatterns = [
        path("webhooks/razorpay/", razorpay_webhook, name="razorpay-webhook"),
    ]
"""

from __future__ import annotations

import logging

from django.db import DatabaseError
from django.http import HttpRequest, HttpResponse, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from core.helpers import get_client_ip

from billing.exceptions import InvalidSignatureError
from billing.webhooks.reconciler import WebhookReconciler


logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Razorpay-Signature"


def get_reconciler() -> WebhookReconciler:
    """Build the reconciler used by the endpoint (patched in tests)."""
    return WebhookReconciler()


@csrf_exempt
@require_POST
def razorpay_webhook(request: HttpRequest) -> HttpResponse:
    """
    Receive a Razorpay webhook and apply it synchronously.

    The raw body is passed through untouched: the signature is an HMAC of
    the exact bytes the gateway sent.
    """
    signature = request.headers.get(SIGNATURE_HEADER, "")
    if not signature:
        logger.warning(
            f"Webhook received without {SIGNATURE_HEADER} header",
            extra={"client_ip": get_client_ip(request)},
        )
        return HttpResponse("Missing signature", status=400)

    try:
        result = get_reconciler().process(request.body, signature)
    except InvalidSignatureError:
        logger.warning("Rejected webhook with invalid signature", extra={"client_ip": get_client_ip(request)})
        return HttpResponse("Invalid signature", status=400)
    except DatabaseError:
        return HttpResponse("Temporarily unavailable", status=503)

    logger.info(
        f"Webhook {result.outcome}",
        extra={"event_type": result.event_type, "idempotency_key": result.idempotency_key},
    )
    return JsonResponse({"status": "ok"})
