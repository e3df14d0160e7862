"""audit/ -- Append-only activity log.

Layer rule: imports only from core/. Reads the users table for the actor's
role but never writes to it.
"""
