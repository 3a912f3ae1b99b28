"""
InflowHub tenancy core.

Resolves which organizations a signed-in user may act on, which one is
current, the role and permissions inside it, the subscription state that
gates premium features, and repairs records created before a tenant
association existed.
"""

__version__ = "0.1.0"
