"""
Pin Wheel Configuration
All configurable parameters for the daily draw, entries and notifications
"""

import os

# Entry settings
ENTRY_COST = int(os.getenv("PINWHEEL_ENTRY_COST", "10"))  # GRIT per daily entry
ENTRY_MEMO = "Pin Wheel entry"

# Draw window: entries made at or after 20:00 UTC count toward tomorrow's draw
DRAW_HOUR_UTC = 20
AUTO_ENTRY_LEAD_MINUTES = 5  # auto-entry batch runs at 19:55 UTC

# Check raw identifiers written before entries were canonicalized to Drip account IDs
LEGACY_ENTRY_LOOKUP = os.getenv("LEGACY_ENTRY_LOOKUP", "true").lower() in ("1", "true", "yes")

# Notifications
DISCORD_PINWHEEL_WEBHOOK = os.getenv("DISCORD_PINWHEEL_WEBHOOK", "")
NOTIFICATION_USERNAME = "Shredding Sassy"
NOTIFICATION_AVATAR_URL = "https://portal.shreddingsassy.com/images/sassy%20mascot%20logo%20(2).jpg"
PIN_IMAGE_BASE_URL = "https://portal.shreddingsassy.com/images"
WINNER_EMBED_COLOR = 0xFACC15

# Listing limits
RECENT_WINNERS_LIMIT = 10
ADMIN_WINNERS_LIMIT = 100

# Pin Wheel pins - 19 total, equal probability
PINS = [
    'Beer Can',
    'Base Logo',
    'Bitcoin Logo',
    'Diamond Hands',
    'Double Peaks',
    'ETH Logo',
    'Fire',
    'Flaming Goggles',
    'Ghost',
    'Glitch Smiley',
    'MTB Sassy',
    'Pixel Glasses',
    'Sassy Drip Logo',
    'Skateboard',
    'Ski Sassy',
    'Snowboard Sassy',
    'SSSC',
    'Stache',
    'Surf Sassy',
]
