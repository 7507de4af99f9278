"""
Department queue endpoints.

Queues are read-only views over visit, order and billing status.  Each
department reads its own queue; administrators may read any of them.
Doctors only see visits assigned to them.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import NotFound, PermissionDenied
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import User
from ..services import queues as queue_service
from ..services.billing import billing_summary
from ..services.formats import (
    format_batch_service,
    format_diagnostic_order,
    format_medication_order,
    format_visit,
)

MAX_ITEMS = 200


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def queue_list(request, name: str):
    """Return the current contents of the named department queue."""
    entry = queue_service.QUEUES.get(name)
    if entry is None:
        raise NotFound(f'unknown queue {name}')
    build, roles = entry
    user: User = request.user  # type: ignore[assignment]
    if user.role != User.ROLE_ADMIN and user.role not in roles:
        raise PermissionDenied(f'{user.role} cannot read the {name} queue')
    result = build(user)

    if name in ('lab', 'radiology'):
        orders = list(result['orders'][:MAX_ITEMS])
        services = list(result['batch_services'][:MAX_ITEMS])
        return Response({
            'ok': True,
            'queue': name,
            'count': len(orders) + len(services),
            'orders': [format_diagnostic_order(o) for o in orders],
            'batchServices': [format_batch_service(s) for s in services],
        })
    if name == 'pharmacy':
        data = [format_medication_order(m) for m in result[:MAX_ITEMS]]
    elif name == 'billing':
        data = [billing_summary(b) for b in result[:MAX_ITEMS]]
    else:
        data = [format_visit(v) for v in result[:MAX_ITEMS]]
    return Response({'ok': True, 'queue': name, 'count': len(data), 'data': data})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def queue_summary(request):
    """Queue lengths for every department (cached for a few seconds)."""
    return Response({'ok': True, 'data': queue_service.queue_counts()})
