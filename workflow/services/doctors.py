from typing import Optional

from workflow.models import User


def format_doctor(u: User) -> dict:
    return {
        'id': u.id,
        'name': u.get_full_name() or u.username,
        'available': u.available,
        'consultationFee': f'{u.consultation_fee:.2f}' if u.consultation_fee is not None else None,
        'specialties': u.specialties or [],
    }


def list_doctors(*, q: Optional[str] = None, available_only: bool = False, page: Optional[int] = None,
                 page_size: Optional[int] = None):
    qs = User.objects.filter(role=User.ROLE_DOCTOR, is_active=True)
    if q:
        qs = qs.filter(first_name__icontains=q) | qs.filter(last_name__icontains=q) | qs.filter(username__icontains=q)
    if available_only:
        qs = qs.filter(available=True)
    qs = qs.order_by('id')
    total = qs.count()
    if page and page_size:
        start = (page - 1) * page_size
        qs = qs[start:start + page_size]
    return [format_doctor(u) for u in qs], total


def set_availability(doctor: User, available: bool) -> User:
    doctor.available = available
    doctor.save(update_fields=['available'])
    return doctor
