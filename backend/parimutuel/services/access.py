"""
Access Policy - Address-based gating from explicit configuration
"""
from typing import Iterable, Optional


class AccessPolicy:
    """Admin gating. Addresses are supplied by configuration, never hardcoded."""

    def __init__(self, admin_addresses: Iterable[str] = ()):
        self.admin_addresses = frozenset(a.strip() for a in admin_addresses if a and a.strip())

    def is_admin(self, address: Optional[str]) -> bool:
        if not address:
            return False
        return address.strip() in self.admin_addresses

    def capabilities(self, address: Optional[str]) -> dict:
        return {
            'address': address,
            'is_admin': self.is_admin(address),
        }
