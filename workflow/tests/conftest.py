from decimal import Decimal

import pytest
from rest_framework.test import APIClient

from workflow.models import InvestigationType, MedicationCatalog, Patient, Service, User


def make_user(username, role, **extra):
    return User.objects.create_user(username=username, password='P@ssw0rd1', role=role, **extra)


@pytest.fixture
def reception(db):
    return make_user('reception1', User.ROLE_RECEPTION)


@pytest.fixture
def nurse(db):
    return make_user('nurse1', User.ROLE_NURSE)


@pytest.fixture
def doctor(db):
    return make_user('doctor1', User.ROLE_DOCTOR, first_name='Ada', last_name='Okafor',
                     consultation_fee=Decimal('40.00'))


@pytest.fixture
def other_doctor(db):
    return make_user('doctor2', User.ROLE_DOCTOR, consultation_fee=None)


@pytest.fixture
def lab_tech(db):
    return make_user('lab1', User.ROLE_LAB)


@pytest.fixture
def radiologist(db):
    return make_user('radiology1', User.ROLE_RADIOLOGY)


@pytest.fixture
def pharmacist(db):
    return make_user('pharmacy1', User.ROLE_PHARMACY)


@pytest.fixture
def cashier(db):
    return make_user('billing1', User.ROLE_BILLING)


@pytest.fixture
def admin_user(db):
    return make_user('admin1', User.ROLE_ADMIN)


@pytest.fixture
def patient(db):
    return Patient.objects.create(name='Grace Mensah', sex='F', age=34, phone='0244000001')


@pytest.fixture
def catalog(db):
    consult = Service.objects.create(code='CONS001', name='General consultation',
                                     category=Service.CATEGORY_CONSULTATION, price=Decimal('30.00'))
    cbc_service = Service.objects.create(code='LAB001', name='Complete blood count',
                                         category=Service.CATEGORY_LAB, price=Decimal('50.00'))
    glucose_service = Service.objects.create(code='LAB002', name='Blood glucose',
                                             category=Service.CATEGORY_LAB, price=Decimal('20.00'))
    xray_service = Service.objects.create(code='RAD001', name='Chest X-ray',
                                          category=Service.CATEGORY_RADIOLOGY, price=Decimal('75.00'))
    cbc = InvestigationType.objects.create(name='Complete blood count', category=InvestigationType.CATEGORY_LAB,
                                           price=Decimal('50.00'), service=cbc_service)
    xray = InvestigationType.objects.create(name='Chest X-ray', category=InvestigationType.CATEGORY_RADIOLOGY,
                                            price=Decimal('75.00'), service=xray_service)
    paracetamol = MedicationCatalog.objects.create(name='Paracetamol', strength='500mg', dosage_form='Tablet',
                                                   unit_price=Decimal('0.50'), available_quantity=100)
    return {
        'consult': consult,
        'cbc_service': cbc_service,
        'glucose_service': glucose_service,
        'xray_service': xray_service,
        'cbc': cbc,
        'xray': xray,
        'paracetamol': paracetamol,
    }


@pytest.fixture
def api():
    return APIClient()
