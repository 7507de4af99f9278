import pytest
from django.urls import reverse
from rest_framework.test import APIClient

from workflow.models import User

pytestmark = pytest.mark.django_db


def login(client, username, password):
    r = client.post(reverse('login_view'), {'username': username, 'password': password}, format='json')
    assert r.status_code in (200, 400, 401)
    return r


def test_no_role_bypass_in_login():
    client = APIClient()
    u = User.objects.create_user(username='u1', password='P@ssw0rd1', role='nurse')
    # Try to escalate by sending a role
    r = client.post(reverse('login_view'), {'username': 'u1', 'password': 'P@ssw0rd1', 'role': 'admin'}, format='json')
    assert r.status_code == 200
    assert r.data['role'] == 'nurse'
    u.refresh_from_db()
    assert u.role == 'nurse'


def test_bad_password_is_rejected():
    client = APIClient()
    User.objects.create_user(username='u1', password='P@ssw0rd1', role='nurse')
    r = login(client, 'u1', 'wrong')
    assert r.status_code == 400
    assert r.data['ok'] is False
    assert r.data['error']['code'] == 'invalid_credentials'


def test_login_returns_jwt_and_legacy_token():
    client = APIClient()
    User.objects.create_user(username='u_jwt', password='P@ssw0rd1', role='billing')
    r = login(client, 'u_jwt', 'P@ssw0rd1')
    assert r.status_code == 200
    assert 'jwt_access' in r.data and r.data['jwt_access']
    assert 'jwt_refresh' in r.data and r.data['jwt_refresh']
    assert 'token' in r.data and r.data['token']


def test_legacy_token_and_jwt_both_authenticate():
    User.objects.create_user(username='rec', password='P@ssw0rd1', role='reception')
    r = login(APIClient(), 'rec', 'P@ssw0rd1')

    c = APIClient()
    c.credentials(HTTP_AUTHORIZATION=f"Token {r.data['token']}")
    assert c.get(reverse('patients')).status_code == 200

    c = APIClient()
    c.credentials(HTTP_AUTHORIZATION=f"Bearer {r.data['jwt_access']}")
    assert c.get(reverse('patients')).status_code == 200


def test_anonymous_requests_are_rejected():
    c = APIClient()
    r = c.get(reverse('queue_summary'))
    assert r.status_code == 401
    assert r.data['error']['code'] == 'not_authenticated'
    r = c.post(reverse('visit_create'), {'patientId': 1}, format='json')
    assert r.status_code == 401


def test_refresh_and_logout_blacklists_refresh_token():
    User.objects.create_user(username='doc', password='P@ssw0rd1', role='doctor')
    r = login(APIClient(), 'doc', 'P@ssw0rd1')
    refresh = r.data['jwt_refresh']

    c = APIClient()
    rr = c.post(reverse('jwt_refresh_view'), {'refresh': refresh}, format='json')
    assert rr.status_code == 200
    assert rr.data['jwt_access']

    c.credentials(HTTP_AUTHORIZATION=f"Bearer {r.data['jwt_access']}")
    out = c.post(reverse('jwt_logout_view'), {'refresh': refresh}, format='json')
    assert out.status_code == 200
    assert out.data['blacklisted'] == 1

    again = APIClient().post(reverse('jwt_refresh_view'), {'refresh': refresh}, format='json')
    assert again.status_code == 401


def test_admin_passes_every_role_check():
    admin = User.objects.create_user(username='root', password='P@ssw0rd1', role='admin')
    c = APIClient()
    c.force_authenticate(user=admin)
    for name in ('triage', 'doctor', 'lab', 'radiology', 'pharmacy', 'billing'):
        assert c.get(reverse('queue_list', args=[name])).status_code == 200


def test_only_admin_adjusts_billing(patient):
    from decimal import Decimal
    from workflow.models import Billing

    billing = Billing.objects.create(patient=patient, billing_type=Billing.TYPE_REGULAR,
                                     total_amount=Decimal('10.00'))
    cashier = User.objects.create_user(username='cash', password='P@ssw0rd1', role='billing')
    c = APIClient()
    c.force_authenticate(user=cashier)
    r = c.post(reverse('billing_adjust', args=[billing.id]), {'status': 'PAID', 'reason': 'waiver'}, format='json')
    assert r.status_code == 403
    assert r.data['error']['code'] == 'permission_denied'


def test_free_text_is_sanitised(patient):
    rec = User.objects.create_user(username='rec', password='P@ssw0rd1', role='reception')
    c = APIClient()
    c.force_authenticate(user=rec)
    r = c.post(reverse('visit_create'), {'patientId': patient.id, 'notes': '<script>alert(1)</script>fever'},
               format='json')
    assert r.status_code == 201
    assert '<script>' not in r.data['data']['notes']


def test_expired_legacy_token_is_refused(settings):
    from datetime import timedelta

    from django.utils import timezone
    from rest_framework.authtoken.models import Token

    settings.AUTH_TOKEN_TTL_HOURS = 1
    User.objects.create_user(username='rec', password='P@ssw0rd1', role='reception')
    r = login(APIClient(), 'rec', 'P@ssw0rd1')
    old = r.data['token']
    Token.objects.filter(key=old).update(created=timezone.now() - timedelta(hours=2))

    c = APIClient()
    c.credentials(HTTP_AUTHORIZATION=f"Token {old}")
    assert c.get(reverse('patients')).status_code == 401

    Token.objects.get_or_create(key=old, user=User.objects.get(username='rec'))
    Token.objects.filter(key=old).update(created=timezone.now() - timedelta(hours=2))
    # logging in again rotates the expired token
    r = login(APIClient(), 'rec', 'P@ssw0rd1')
    assert r.data['token'] != old
    assert not Token.objects.filter(key=old).exists()
