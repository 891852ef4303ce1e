"""
Payment platform adapters.

Importing this package registers every adapter with ``payments.registry``.
"""

from payments.platforms import (  # noqa: F401
    checkouts,
    kiwify,
    mercadopago,
    shopify,
    ticto,
    twispay,
    woocommerce,
)
from payments.platforms.base import BasePlatformAdapter

__all__ = ["BasePlatformAdapter"]
