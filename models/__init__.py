"""ORM models exposed by the Patients application."""
from .assessment import GeneralAssessment, OverweightAssessment
from .patient import Patient
from .pending_op import Endpoint, PendingSync
from .vitals import Vitals

__all__ = [
    "Endpoint",
    "GeneralAssessment",
    "OverweightAssessment",
    "Patient",
    "PendingSync",
    "Vitals",
]
