"""
cartsync — optimistic storefront cart with membership benefits.

    from cartsync import cart as K        # Optimistic cart state machine
    from cartsync import benefits as B    # Membership pricing
    from cartsync import resilience as R  # Retry, snapshot cache, degradation
    from cartsync import session as S     # Membership-aware cart session
"""

from cartsync import benefits
from cartsync import resilience
from cartsync import cart
from cartsync import platform
from cartsync import session
from cartsync._types import (
    Result,
    Ok,
    Error,
    Lazy,
    Operation,
    Clock,
    utc_now,
)
from cartsync._errors import (
    ErrorKind,
    UserAction,
    ErrorContext,
    CommerceError,
    Errors,
    classify,
)
from cartsync._logging import configure_logging, bind_context, clear_context

__version__ = "0.1.0"

__all__ = (
    "benefits",
    "resilience",
    "cart",
    "platform",
    "session",
    "Result",
    "Ok",
    "Error",
    "Lazy",
    "Operation",
    "Clock",
    "utc_now",
    "ErrorKind",
    "UserAction",
    "ErrorContext",
    "CommerceError",
    "Errors",
    "classify",
    "configure_logging",
    "bind_context",
    "clear_context",
)
