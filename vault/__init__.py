"""vault/ -- System credentials: persistence, access policy, use cases.

Layer rule: imports from core/, auth.models and audit/. Never from api/.
"""
