from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.core.management.base import BaseCommand
from django.utils import timezone

from workflow.services.notify import GROUP
from workflow.services.queues import COUNTS_CACHE_KEY, queue_counts


class Command(BaseCommand):
    help = "Recompute cached queue counts and broadcast a WebSocket refresh event."

    def handle(self, *args, **options):
        now = timezone.now()
        counts = queue_counts(refresh=True)

        channel_layer = get_channel_layer()
        if channel_layer is not None:
            event = {
                "type": "queue.changed",
                "action": "refresh",
                "queues": sorted(counts),
                "counts": counts,
                "ts": now.isoformat(),
            }
            async_to_sync(channel_layer.group_send)(GROUP, event)

        self.stdout.write(self.style.SUCCESS(f"Refreshed {COUNTS_CACHE_KEY} at {now}: {counts}"))
