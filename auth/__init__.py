"""auth/ -- Credentials, tokens, and request authorization for Waypoint Identity.

Layer rule: auth/ imports only stdlib, third-party libraries, core/, and the
plain dataclasses in accounts/models.py. It does NOT import from api/ or
services/. The account store is reached through app.state at request time.
"""
