from .context_store import ConversationContextStore, InteractionContext, PendingAction
from .directives import Directive, DirectiveKind, parse_directive
from .guard import InteractionGuard
from .inbound_router import InboundHandler, InboundRouter
from .rate_limiter import SlidingWindowRateLimiter

__all__ = [
    "ConversationContextStore",
    "Directive",
    "DirectiveKind",
    "InboundHandler",
    "InboundRouter",
    "InteractionContext",
    "InteractionGuard",
    "PendingAction",
    "SlidingWindowRateLimiter",
    "parse_directive",
]
