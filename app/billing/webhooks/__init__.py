"""
Razorpay webhook handling.

Modules:
- events: WebhookEventType enum and parsed WebhookEvent
- idempotency: TTL markers for processed deliveries
- handlers: Handler registry and per-event handlers
- reconciler: WebhookReconciler (verify, de-duplicate, apply)
- views: razorpay_webhook endpoint
"""
