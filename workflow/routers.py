"""
URL mappings for the hospital workflow API.

Every route is a thin wrapper over a service function.  Trailing
slashes are deliberately omitted (``APPEND_SLASH = False``).
"""
from django.urls import path

from .auth_views import jwt_logout_view, jwt_refresh_view, login_view
from .views import billing, doctors, health, nurses, patients, queues, results, visits

urlpatterns = [
    path('healthz', health.healthz, name='healthz'),

    # Auth
    path('api/auth/login', login_view, name='login_view'),
    path('api/auth/refresh', jwt_refresh_view, name='jwt_refresh_view'),
    path('api/auth/logout', jwt_logout_view, name='jwt_logout_view'),

    # Patients & visits
    path('api/patients', patients.patients, name='patients'),
    path('api/visits', visits.create_visit, name='visit_create'),
    path('api/visits/<int:visit_id>', visits.visit_detail, name='visit_detail'),
    path('api/visits/<int:visit_id>/cancel', visits.cancel_visit, name='visit_cancel'),
    path('api/visits/<int:visit_id>/medication-check', visits.medication_check, name='visit_medication_check'),
    path('api/appointments/<int:appointment_id>/send-to-doctor', visits.send_appointment_to_doctor,
         name='appointment_send_to_doctor'),

    # Nursing
    path('api/nurses/vitals', nurses.record_vitals, name='nurse_vitals'),
    path('api/nurses/assign-doctor', nurses.assign_doctor, name='nurse_assign_doctor'),

    # Doctors
    path('api/doctors', doctors.list_doctors, name='doctor_list'),
    path('api/doctors/availability', doctors.set_availability, name='doctor_availability'),
    path('api/doctors/select', doctors.select_visit, name='doctor_select'),
    path('api/doctors/lab-orders', doctors.lab_orders, name='doctor_lab_orders'),
    path('api/doctors/radiology-orders', doctors.radiology_orders, name='doctor_radiology_orders'),
    path('api/doctors/batch-orders', doctors.batch_orders, name='doctor_batch_orders'),
    path('api/doctors/medication-orders', doctors.medication_orders, name='doctor_medication_orders'),
    path('api/doctors/complete', doctors.complete_visit, name='doctor_complete'),

    # Departments
    path('api/lab/orders/<int:order_id>/result', results.lab_result, name='lab_result'),
    path('api/radiology/orders/<int:order_id>/result', results.radiology_result, name='radiology_result'),
    path('api/batch-orders/services/<int:service_id>/result', results.batch_service_result,
         name='batch_service_result'),
    path('api/orders/<str:kind>/<int:order_id>/start', results.start_order, name='order_start'),
    path('api/pharmacy/orders/<int:order_id>/dispense', results.dispense_medication, name='pharmacy_dispense'),

    # Billing
    path('api/billing/<int:billing_id>', billing.billing_detail, name='billing_detail'),
    path('api/billing/<int:billing_id>/payments', billing.record_payment, name='billing_payment'),
    path('api/billing/<int:billing_id>/defer-insurance', billing.defer_insurance, name='billing_defer_insurance'),
    path('api/billing/<int:billing_id>/insurance-claimed', billing.insurance_claimed,
         name='billing_insurance_claimed'),
    path('api/billing/<int:billing_id>/adjust', billing.adjust_billing, name='billing_adjust'),

    # Queues
    path('api/queues', queues.queue_summary, name='queue_summary'),
    path('api/queues/<str:name>', queues.queue_list, name='queue_list'),
]
