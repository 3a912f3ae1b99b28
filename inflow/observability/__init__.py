"""
Observability module for the InflowHub tenancy core.

Structured logging with the signed-in user and current organization
attached to every record.
"""
