"""accounts/ -- Account domain model, relational store, and identity engine.

Layer rule: accounts/ may import from core/ and auth/. It does NOT import
from api/. Outbound collaborators (mail, blob storage) are passed into the
engine's constructor; from services/ only DeliveryError and redact_email are
imported.
"""
