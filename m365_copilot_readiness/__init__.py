"""
M365 Copilot Readiness Audit
============================
A read-only assessment of whether a Microsoft 365 tenant is ready for an
AI assistant: Conditional Access compatibility, external sharing exposure,
sensitivity label coverage, and oversharing of content.

WARNING: This tool operates in STRICT READ-ONLY mode.
         No write operations will be performed against the tenant.
"""

__version__ = "1.0.0"
__author__ = "M365 Copilot Readiness Audit"
__mode__ = "READ-ONLY"
