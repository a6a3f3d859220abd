"""
Pin Wheel Winner Notifications
Posts the draw result to the community Discord channel through a webhook
"""

import logging
from datetime import datetime, timezone
from urllib.parse import quote

import discord

from . import config

logger = logging.getLogger(__name__)


def truncate_wallet(value: str) -> str:
    """0x1234...abcd"""
    if value and len(value) > 10:
        return f"{value[:6]}...{value[-4:]}"
    return value


class WinnerNotifier:
    """Best-effort Discord webhook poster. Every failure is logged and swallowed."""

    def __init__(self, webhook_url=None):
        self.webhook_url = webhook_url if webhook_url is not None else config.DISCORD_PINWHEEL_WEBHOOK

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    def build_winner_embed(self, result, discord_id=None):
        winner_mention = f"<@{discord_id}>" if discord_id else f"`{truncate_wallet(result.winning_account_ref)}`"

        embed = discord.Embed(
            title="🎡 Pin Wheel Winner!",
            description=f"Congratulations {winner_mention}! You won the **{result.prize}** pin!",
            color=config.WINNER_EMBED_COLOR,
            timestamp=datetime.now(timezone.utc)
        )
        embed.add_field(name="Draw Date", value=result.window.isoformat(), inline=True)
        embed.add_field(name="Entries", value=str(result.total_entries), inline=True)
        embed.set_thumbnail(url=f"{config.PIN_IMAGE_BASE_URL}/{quote(result.prize)}.png")
        embed.set_footer(text=f"Proof: {result.proof_hash[:16]}")
        return embed

    def _send(self, content=None, embed=None) -> bool:
        if not self.enabled:
            logger.debug("DISCORD_PINWHEEL_WEBHOOK not set, skipping notification")
            return False

        try:
            webhook = discord.SyncWebhook.from_url(self.webhook_url)
            webhook.send(
                content=content,
                embed=embed,
                username=config.NOTIFICATION_USERNAME,
                avatar_url=config.NOTIFICATION_AVATAR_URL,
            )
            return True
        except Exception as e:
            logger.error(f"❌ Failed to send Discord notification: {e}")
            return False

    def notify_winner(self, result, discord_id=None) -> bool:
        """Announce a draw result, mentioning the winner when their Discord ID is known"""
        try:
            embed = self.build_winner_embed(result, discord_id)
        except Exception as e:
            logger.error(f"❌ Failed to build winner embed: {e}")
            return False

        content = f"<@{discord_id}>" if discord_id else None
        sent = self._send(content=content, embed=embed)
        if sent:
            logger.info(f"📢 Winner notification sent for {result.window.isoformat()}")
        return sent
