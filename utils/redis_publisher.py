"""
Redis Publisher for Pin Wheel Events
Publishes draw and entry events to Redis channels for dashboard notifications
"""

import json
import logging
import os

import redis

logger = logging.getLogger(__name__)


class PortalRedisPublisher:
    def __init__(self, redis_url=None):
        redis_url = redis_url or os.getenv('REDIS_URL')
        self.client = None
        self.enabled = False

        if not redis_url:
            logger.info("⚠️ REDIS_URL not set, Pin Wheel events will not be published")
            return

        if '://' not in redis_url:
            redis_url = f'redis://{redis_url}'
        try:
            self.client = redis.from_url(redis_url, decode_responses=True)
            self.client.ping()
            self.enabled = True
            logger.info("✅ Redis publisher connected")
        except redis.RedisError as e:
            logger.warning(f"⚠️ Redis unavailable for publisher: {e}")

    def publish(self, channel, action, data=None):
        """Publish an event to a Redis channel. Best-effort."""
        if not self.enabled:
            return False

        try:
            message = json.dumps({
                'action': action,
                'data': data or {}
            })
            self.client.publish(channel, message)
            logger.debug(f"📤 Published to {channel}: {action}")
            return True
        except (redis.RedisError, TypeError, ValueError) as e:
            logger.error(f"❌ Failed to publish to {channel}: {e}")
            return False

    def publish_pinwheel_draw(self, window, winner_account_ref, pin_won, total_entries):
        """Publish draw result event to dashboard"""
        return self.publish('portal:pinwheel_draw', 'winner_drawn', {
            'window': window,
            'winner': winner_account_ref,
            'pin_won': pin_won,
            'total_entries': total_entries,
        })

    def publish_auto_entry_batch(self, window, report):
        """Publish auto-entry batch summary to dashboard"""
        return self.publish('portal:pinwheel_auto_entry', 'batch_completed', {
            'window': window,
            'processed': report.processed,
            'succeeded': report.succeeded,
            'failed': report.failed,
            'skipped': report.skipped,
        })
