"""FastAPI application for the chat-to-invoice pipeline.

Thin HTTP adapter over the invoice lifecycle:
- Health and readiness checks for Kubernetes
- Preview / confirm of invoices interpreted from chat messages
- Down-payment and final-payment confirmations
- Auto-learning confirmations
- Prometheus metrics for monitoring
"""

import logging
import time
from typing import Any

from fastapi import FastAPI, HTTPException, Request, Response, status
from pydantic import BaseModel, ValidationError

from chat_invoice.completion.factory import create_completion_provider
from chat_invoice.interpretation.interpreter import OrderInterpreter
from chat_invoice.interpretation.schema import (
    BusinessProfile,
    ExtractedOrder,
    PartialCustomer,
    PartialLineItem,
)
from chat_invoice.learning.coordinator import AutoLearningCoordinator
from chat_invoice.learning.models import ConfirmationRequest
from chat_invoice.lifecycle.models import (
    ConfirmationResult,
    DownPaymentConfirmation,
    FinalPaymentConfirmation,
    Invoice,
    InvoicePreview,
)
from chat_invoice.lifecycle.service import InvoiceLifecycle
from chat_invoice.matching.matcher import IdentityMatcher
from chat_invoice.matching.models import EntityKind
from chat_invoice.shared import metrics
from chat_invoice.shared.config import get_settings
from chat_invoice.shared.errors import InputError, InvoiceNotFoundError, StageTransitionError
from chat_invoice.storage.catalog_cache import CatalogProvider
from chat_invoice.storage.factory import create_repository

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Chat Invoice Pipeline",
    description="Turns merchant chat messages into priced invoices with down-payment schedules",
    version=settings.service_version,
)

repository = create_repository(settings)
completion_provider = create_completion_provider(settings)
catalog_provider = CatalogProvider(
    repository, ttl_seconds=settings.catalog_cache_ttl_seconds, limit=settings.product_pool_limit
)
interpreter = OrderInterpreter(settings, completion_provider)
matcher = IdentityMatcher(settings, repository=repository, provider=completion_provider)
learning_coordinator = AutoLearningCoordinator(matcher, repository)
lifecycle = InvoiceLifecycle(
    settings,
    interpreter=interpreter,
    repository=repository,
    catalog=catalog_provider,
    learning=learning_coordinator,
)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Middleware to collect request metrics.

    Tracks:
    - Request count by method, endpoint, and status
    - Request duration by method and endpoint
    """
    # Skip metrics for /metrics endpoint itself
    if request.url.path == "/metrics":
        return await call_next(request)

    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    # Route template keeps invoice ids and tokens out of the label values
    route = request.scope.get("route")
    endpoint = getattr(route, "path", request.url.path)

    metrics.http_requests_total.labels(
        method=request.method,
        endpoint=endpoint,
        status=response.status_code,
    ).inc()

    metrics.http_request_duration_seconds.labels(
        method=request.method,
        endpoint=endpoint,
    ).observe(duration)

    return response


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    service: str


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    ready: bool
    completion_provider: str
    completion_available: bool


class PreviewRequest(BaseModel):
    """Invoice preview request.

    ``business_profile`` may override the merchant name and contact details;
    tax, logo and terms always come from the configured profile.
    """

    message: str
    business_profile: BusinessProfile | None = None
    customer: PartialCustomer | None = None
    items: list[PartialLineItem] | None = None


class ConfirmRequest(BaseModel):
    """Invoice confirmation request carrying the reviewed order."""

    order: ExtractedOrder
    business_profile: BusinessProfile | None = None
    preview_id: str | None = None


class LearningConfirmResponse(BaseModel):
    kind: EntityKind
    record: dict[str, Any]


def _not_found(e: InvoiceNotFoundError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


def _conflict(e: StageTransitionError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@app.get("/health", response_model=HealthResponse, tags=["Health"])
def health_check() -> HealthResponse:
    """Health check endpoint for liveness probe.

    Returns:
        Health status information
    """
    return HealthResponse(
        status="healthy", version=settings.service_version, service=settings.service_name
    )


@app.get("/ready", response_model=ReadinessResponse, tags=["Health"])
def readiness_check() -> ReadinessResponse:
    """Readiness check endpoint for Kubernetes readiness probe.

    The service is ready even without a completion provider: previews then
    use the fallback draft.
    """
    return ReadinessResponse(
        ready=True,
        completion_provider=completion_provider.provider_name,
        completion_available=completion_provider.is_available(),
    )


@app.get("/metrics", tags=["Monitoring"])
def get_metrics() -> Response:
    """Prometheus metrics endpoint.

    Returns:
        Prometheus metrics in text format
    """
    metrics_data, content_type = metrics.get_metrics()
    return Response(content=metrics_data, media_type=content_type)


@app.post("/api/v1/invoices/preview", response_model=InvoicePreview, tags=["Invoices"])
def preview_invoice(request: PreviewRequest) -> InvoicePreview:
    """Interpret a chat message into an invoice draft for review.

    Nothing is persisted. A completion failure still returns 200 with a
    fallback draft and a ``completion_fallback`` warning.

    Raises:
        HTTPException: 400 if the message is empty
    """
    try:
        return lifecycle.preview(
            request.message,
            profile=request.business_profile,
            customer=request.customer,
            items=request.items,
        )
    except InputError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e


@app.post("/api/v1/invoices/confirm", response_model=ConfirmationResult, tags=["Invoices"])
def confirm_invoice(request: ConfirmRequest) -> ConfirmationResult:
    """Persist a reviewed invoice and run auto-learning.

    Raises:
        HTTPException: 400 if customer or items are missing
    """
    try:
        return lifecycle.confirm(
            request.order, profile=request.business_profile, preview_id=request.preview_id
        )
    except InputError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e


@app.get("/api/v1/invoices/{invoice_id}", response_model=Invoice, tags=["Invoices"])
def get_invoice(invoice_id: str) -> Invoice:
    try:
        return lifecycle.get_invoice(invoice_id)
    except InvoiceNotFoundError as e:
        raise _not_found(e) from e


@app.post(
    "/api/v1/invoices/{invoice_id}/confirm-down-payment",
    response_model=DownPaymentConfirmation,
    tags=["Payments"],
)
def confirm_down_payment(invoice_id: str) -> DownPaymentConfirmation:
    """Confirm the down payment and open the final payment.

    Raises:
        HTTPException: 404 for unknown invoices, 409 if not awaiting a down payment
    """
    try:
        return lifecycle.confirm_down_payment(invoice_id)
    except InvoiceNotFoundError as e:
        raise _not_found(e) from e
    except StageTransitionError as e:
        raise _conflict(e) from e


@app.post(
    "/api/v1/invoices/{invoice_id}/confirm-final-payment",
    response_model=FinalPaymentConfirmation,
    tags=["Payments"],
)
def confirm_final_payment(invoice_id: str) -> FinalPaymentConfirmation:
    """Confirm the final payment and complete the invoice.

    Raises:
        HTTPException: 404 for unknown invoices, 409 if not awaiting the final payment
    """
    try:
        return lifecycle.confirm_final_payment(invoice_id)
    except InvoiceNotFoundError as e:
        raise _not_found(e) from e
    except StageTransitionError as e:
        raise _conflict(e) from e


@app.get("/api/v1/customer-invoice/{token}", response_model=Invoice, tags=["Payments"])
def get_customer_invoice(token: str) -> Invoice:
    try:
        return lifecycle.find_by_customer_token(token)
    except InvoiceNotFoundError as e:
        raise _not_found(e) from e


@app.get("/api/v1/final-payment/{token}", response_model=Invoice, tags=["Payments"])
def get_final_payment(token: str) -> Invoice:
    """Resolve a final-payment link; only valid while the final payment is open."""
    try:
        return lifecycle.find_by_final_payment_token(token)
    except InvoiceNotFoundError as e:
        raise _not_found(e) from e


@app.post(
    "/api/v1/auto-learning/confirm", response_model=LearningConfirmResponse, tags=["Auto-learning"]
)
def confirm_learning_candidate(request: ConfirmationRequest) -> LearningConfirmResponse:
    """Store a customer or product the merchant approved.

    Raises:
        HTTPException: 400 if the candidate data is incomplete
    """
    try:
        record = learning_coordinator.accept(request)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    if request.kind == EntityKind.PRODUCT:
        catalog_provider.invalidate()
    return LearningConfirmResponse(kind=request.kind, record=record.model_dump(mode="json"))
