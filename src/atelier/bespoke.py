"""Bespoke tailoring requests: customer submission and admin progression."""

import copy
import logging

from .errors import InvalidTransitionError, NotCustomizableError, PermissionDeniedError
from .models import (
    Actor,
    AuditLog,
    BespokeRequest,
    BespokeStatus,
    Measurements,
    Product,
    _generate_id,
    _utc_now,
)
from .stores import BespokeStore, OrderStore

logger = logging.getLogger(__name__)

BESPOKE_TRANSITIONS: dict[BespokeStatus, frozenset[BespokeStatus]] = {
    BespokeStatus.PENDING: frozenset({BespokeStatus.CONSULTED}),
    BespokeStatus.CONSULTED: frozenset({BespokeStatus.FULFILLED}),
    BespokeStatus.FULFILLED: frozenset(),
}


def submit_request(
    store: BespokeStore,
    actor: Actor,
    product: Product,
    measurements: Measurements,
    notes: str = "",
    email: str = "",
) -> BespokeRequest:
    """
    Record a tailoring consultation request for a customizable product.

    Raises:
        NotCustomizableError: If the product doesn't offer tailoring.
    """
    if not product.is_customizable:
        raise NotCustomizableError(product.id)

    now = _utc_now()
    request = BespokeRequest(
        id=_generate_id(),
        user_id=actor.user_id,
        user_name=actor.name,
        user_email=email,
        product_id=product.id,
        product_name=product.name,
        measurements=copy.deepcopy(measurements),
        notes=notes,
        status=BespokeStatus.PENDING,
        created_at=now,
        updated_at=now,
    )
    store.create(request)
    logger.info("Bespoke request %s submitted for product %s", request.id, product.id)
    return request


def advance_request(
    store: BespokeStore,
    request_id: str,
    target: BespokeStatus | str,
    actor: Actor,
    audit: OrderStore | None = None,
) -> BespokeRequest:
    """
    Move a bespoke request forward. Admin only; repeating the current status is a no-op.

    Raises:
        PermissionDeniedError: If actor is not an admin.
        InvalidTransitionError: If the step skips or goes backwards.
    """
    if not actor.is_admin:
        raise PermissionDeniedError(actor.user_id, "update bespoke requests")
    target = BespokeStatus.parse(target)
    previous: list[BespokeStatus] = []

    def mutate(current: BespokeRequest) -> BespokeRequest:
        previous.append(current.status)
        if current.status == target:
            return current
        if target not in BESPOKE_TRANSITIONS[current.status]:
            raise InvalidTransitionError(
                current.status.value, target.value, entity="Bespoke request"
            )
        updated = copy.deepcopy(current)
        updated.status = target
        return updated

    request = store.update(request_id, mutate)
    if previous[0] != request.status and audit is not None:
        audit.append_audit_log(AuditLog.record(
            "bespoke_status_changed",
            actor,
            {"request_id": request_id, "from": previous[0].value, "to": target.value},
        ))
    return request
