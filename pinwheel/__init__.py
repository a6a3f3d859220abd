"""
Pin Wheel Package
Daily GRIT-funded prize draw: entries, provably fair draw, auto-entry
"""

__version__ = "1.0.0"

# Export main components
from .entries import EntryLedger
from .identity import IdentityResolver, normalize_identifier
from .draw import PinwheelDraw
from .entry_service import EntryService
from .auto_entry import AutoEntryManager
from .scheduler import setup_pinwheel_scheduler

__all__ = [
    'EntryLedger',
    'IdentityResolver',
    'normalize_identifier',
    'PinwheelDraw',
    'EntryService',
    'AutoEntryManager',
    'setup_pinwheel_scheduler',
]
