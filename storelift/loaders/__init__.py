"""Provisioners for target stores."""

from .base import BaseProvisioner, LoadResult
from .woocommerce_loader import WooCommerceProvisioner
from .replay import ReplayDriver, ReplayResult

__all__ = [
    "BaseProvisioner",
    "LoadResult",
    "WooCommerceProvisioner",
    "ReplayDriver",
    "ReplayResult",
]
