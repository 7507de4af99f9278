from datetime import timedelta
from io import StringIO

import pytest
from django.core.management import call_command
from django.utils import timezone

from workflow.models import InvestigationType, MedicationCatalog, Patient, Service, User, Visit
from workflow.services import patients as patient_service
from workflow.services import visits

pytestmark = pytest.mark.django_db


def test_mark_inactive_patients_skips_open_visits(reception):
    long_ago = timezone.now() - timedelta(days=400)
    stale = Patient.objects.create(name='Stale', last_visit_at=long_ago)
    busy = Patient.objects.create(name='Busy', last_visit_at=long_ago)
    recent = Patient.objects.create(name='Recent', last_visit_at=timezone.now() - timedelta(days=3))
    visit = visits.create_visit(busy, created_by=reception)
    # the open visit keeps the patient active even though last_visit_at is old
    Patient.objects.filter(id=busy.id).update(last_visit_at=long_ago)
    assert visit.status == Visit.WAITING_FOR_TRIAGE

    assert patient_service.mark_inactive_patients(180) == 1
    statuses = dict(Patient.objects.values_list('name', 'status'))
    assert statuses == {
        stale.name: Patient.STATUS_INACTIVE,
        busy.name: Patient.STATUS_ACTIVE,
        recent.name: Patient.STATUS_ACTIVE,
    }


def test_new_visit_reactivates_patient(reception):
    p = Patient.objects.create(name='Returning', status=Patient.STATUS_INACTIVE)
    visits.create_visit(p, created_by=reception)
    p.refresh_from_db()
    assert p.status == Patient.STATUS_ACTIVE


def test_mark_inactive_patients_command():
    Patient.objects.create(name='Old', last_visit_at=timezone.now() - timedelta(days=40))
    out = StringIO()
    call_command('mark_inactive_patients', '--days', '30', stdout=out)
    assert 'Marked 1 patient(s) inactive' in out.getvalue()


def test_seed_catalog_is_idempotent():
    call_command('seed_catalog', stdout=StringIO())
    counts = (Service.objects.count(), InvestigationType.objects.count(), MedicationCatalog.objects.count())
    call_command('seed_catalog', stdout=StringIO())
    assert counts == (Service.objects.count(), InvestigationType.objects.count(), MedicationCatalog.objects.count())
    assert Service.objects.filter(category=Service.CATEGORY_CONSULTATION).exists()


def test_ensure_test_users_creates_one_per_role():
    call_command('ensure_test_users', stdout=StringIO())
    roles = set(User.objects.values_list('role', flat=True))
    assert roles == {code for code, _ in User.ROLE_CHOICES}
    assert User.objects.get(username='doctor1').check_password('123456')


def test_refresh_caches_command(patient, reception):
    visits.create_visit(patient, created_by=reception)
    out = StringIO()
    call_command('refresh_caches', stdout=out)
    assert "'triage': 1" in out.getvalue()
