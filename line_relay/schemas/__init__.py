from line_relay.schemas.push import PushRequest
from line_relay.schemas.webhook import InboundEvent, MalformedPayloadError, parse_inbound_events

__all__ = ["InboundEvent", "MalformedPayloadError", "PushRequest", "parse_inbound_events"]
