"""
Decodes gateway webhook envelopes into typed events.

Envelope: {"event": "<type>", "payload": {"<entity>": {"entity": {...}}}}

Known types map to one event class each; anything else decodes to
UnknownEvent, which the ingestor accepts and ignores.
"""
from typing import Dict, Any, Optional

from app.errors import InvalidPayload


class WebhookEvent:
    event_type: str = ""

    def __init__(self, raw: Dict[str, Any]):
        self.raw = raw


class PaymentCaptured(WebhookEvent):
    event_type = "payment.captured"

    def __init__(self, raw: Dict[str, Any], payment_id: str, order_id: str):
        super().__init__(raw)
        self.payment_id = payment_id
        self.order_id = order_id


class PaymentFailed(WebhookEvent):
    event_type = "payment.failed"

    def __init__(self, raw: Dict[str, Any], payment_id: str, order_id: str):
        super().__init__(raw)
        self.payment_id = payment_id
        self.order_id = order_id


class RefundProcessed(WebhookEvent):
    event_type = "refund.processed"

    def __init__(self, raw: Dict[str, Any], refund_id: str, payment_id: Optional[str]):
        super().__init__(raw)
        self.refund_id = refund_id
        self.payment_id = payment_id


class RefundFailed(WebhookEvent):
    event_type = "refund.failed"

    def __init__(self, raw: Dict[str, Any], refund_id: str, payment_id: Optional[str]):
        super().__init__(raw)
        self.refund_id = refund_id
        self.payment_id = payment_id


class UnknownEvent(WebhookEvent):
    def __init__(self, raw: Dict[str, Any], event_type: str):
        super().__init__(raw)
        self.event_type = event_type


def _entity(envelope: Dict[str, Any], name: str) -> Dict[str, Any]:
    """envelope["payload"][name]["entity"], or InvalidPayload."""
    try:
        entity = envelope["payload"][name]["entity"]
    except (KeyError, TypeError):
        raise InvalidPayload(f"{envelope.get('event')} event is missing payload.{name}.entity")
    if not isinstance(entity, dict):
        raise InvalidPayload(f"{envelope.get('event')} event has a malformed {name} entity")
    return entity


def _required(entity: Dict[str, Any], field: str, event_type: str) -> str:
    value = entity.get(field)
    if not value:
        raise InvalidPayload(f"{event_type} event is missing {field}")
    return str(value)


def _decode_payment(cls):
    def decode(envelope: Dict[str, Any]) -> WebhookEvent:
        entity = _entity(envelope, "payment")
        return cls(
            envelope,
            payment_id=_required(entity, "id", cls.event_type),
            order_id=_required(entity, "order_id", cls.event_type),
        )
    return decode


def _decode_refund(cls):
    def decode(envelope: Dict[str, Any]) -> WebhookEvent:
        entity = _entity(envelope, "refund")
        return cls(
            envelope,
            refund_id=_required(entity, "id", cls.event_type),
            payment_id=entity.get("payment_id"),
        )
    return decode


DECODERS = {
    PaymentCaptured.event_type: _decode_payment(PaymentCaptured),
    PaymentFailed.event_type: _decode_payment(PaymentFailed),
    RefundProcessed.event_type: _decode_refund(RefundProcessed),
    RefundFailed.event_type: _decode_refund(RefundFailed),
}


def event_type_of(envelope: Any) -> str:
    if not isinstance(envelope, dict) or not isinstance(envelope.get("event"), str):
        raise InvalidPayload("Webhook body is not an event envelope")
    return envelope["event"]


def decode_event(envelope: Dict[str, Any]) -> WebhookEvent:
    """
    Maps a parsed webhook body to its typed event.

    Raises:
        InvalidPayload: body is not an envelope, or a known event lacks its ids
    """
    event_type = event_type_of(envelope)
    decoder = DECODERS.get(event_type)
    if decoder is None:
        return UnknownEvent(envelope, event_type)
    return decoder(envelope)
