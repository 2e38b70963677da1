from .client import StorefrontClient
from .errors import CheckoutError, ValidationError, RejectedByServer, TransportError
from .gate import PromotionGate
from .session import CheckoutSession, CheckoutState, Contact
from .storage import KeyValueStore, MemoryStore

__all__ = [
    "StorefrontClient",
    "CheckoutError",
    "ValidationError",
    "RejectedByServer",
    "TransportError",
    "PromotionGate",
    "CheckoutSession",
    "CheckoutState",
    "Contact",
    "KeyValueStore",
    "MemoryStore",
]
