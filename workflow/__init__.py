"""Visit workflow application for the hospital backend.

This package contains the models, services, serializers, views and
route registrations that move a patient visit from triage through
billing-gated diagnostics and pharmacy to completion.
"""
