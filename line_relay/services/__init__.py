from line_relay.services.dispatch_service import EventDispatcher, ReplyTokenSlot
from line_relay.services.handoff_store import HandoffStore, get_handoff_store
from line_relay.services.intent_service import Intent, classify
from line_relay.services.outcome import CallOutcome, OutcomeKind, RateLimitKind
