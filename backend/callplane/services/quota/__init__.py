"""
Quota Module

Admission control over per-project call quotas.
"""
from .admission import AdmissionController, AdmissionDecision, evaluate
from .store import QuotaStore

__all__ = [
    "AdmissionController",
    "AdmissionDecision",
    "QuotaStore",
    "evaluate",
]
