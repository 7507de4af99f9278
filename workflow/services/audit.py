import logging
from typing import Optional, Any, Dict

from django.contrib.auth import get_user_model
from django.db import DatabaseError, transaction

from workflow.models import AuditEvent

User = get_user_model()
logger = logging.getLogger(__name__)


def _write(user_id: Optional[int], action: str, object_type: Optional[str], object_id: Optional[int],
           detail: Dict[str, Any]) -> None:
    try:
        AuditEvent.objects.create(
            user_id=user_id,
            action=action,
            object_type=object_type, object_id=object_id,
            detail=detail,
        )
    except DatabaseError as e:
        # Audit is best-effort; the business write has already committed.
        logger.warning("audit write failed for %s %s#%s: %s", action, object_type, object_id, e)


def log_action(*, user: Optional[User], action: str, object_type: Optional[str]=None, object_id: Optional[int]=None, detail: Optional[Dict[str, Any]]=None) -> None:
    """Append an audit event once the surrounding transaction commits.

    Outside a transaction the event is written immediately.
    """
    user_id = getattr(user, 'id', None) if getattr(user, 'is_authenticated', False) else None
    payload = dict(detail or {})
    transaction.on_commit(lambda: _write(user_id, action, object_type, object_id, payload))
