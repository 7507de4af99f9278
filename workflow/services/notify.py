import logging
from typing import Iterable, Optional

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from workflow.events import QueueEvent
from workflow.models import Visit

logger = logging.getLogger(__name__)

GROUP = "queues"

# Department screens that show a visit in a given status
STATUS_QUEUES = {
    Visit.WAITING_FOR_TRIAGE: ['triage'],
    Visit.TRIAGED: ['triage'],
    Visit.WAITING_FOR_DOCTOR: ['doctor', 'billing'],
    Visit.IN_DOCTOR_QUEUE: ['doctor', 'billing'],
    Visit.UNDER_DOCTOR_REVIEW: ['doctor'],
    Visit.SENT_TO_LAB: ['lab', 'billing'],
    Visit.SENT_TO_RADIOLOGY: ['radiology', 'billing'],
    Visit.SENT_TO_BOTH: ['lab', 'radiology', 'billing'],
    Visit.AWAITING_RESULTS_REVIEW: ['results'],
    Visit.COMPLETED: ['pharmacy'],
    Visit.CANCELLED: [],
}


def _send(message: dict) -> None:
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return
    try:
        async_to_sync(channel_layer.group_send)(GROUP, message)
    except Exception as e:  # noqa: BLE001 - channel backends raise their own errors
        logger.warning("queue broadcast failed: %s", e)


def queue_changed(visit: Visit, action: str, *, extra_queues: Iterable[str] = (),
                  order_kind: Optional[str] = None, order_id: Optional[int] = None) -> None:
    """Broadcast a queue change for ``visit`` after the transaction commits."""
    if not getattr(settings, 'QUEUE_NOTIFICATIONS_ENABLED', True):
        return
    queues = list(dict.fromkeys([*STATUS_QUEUES.get(visit.status, []), *extra_queues]))
    event = QueueEvent(
        action=action,
        visit_id=visit.id,
        status=visit.status,
        queues=queues,
        ts=timezone.now().isoformat(),
        order_kind=order_kind,
        order_id=order_id,
    )
    message = event.to_message()
    transaction.on_commit(lambda: _send(message))
