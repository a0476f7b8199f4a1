"""Database models"""

from callinsight.models.tenant import Tenant, Agent, Contact
from callinsight.models.call import Call, CallAnalysis, CALL_STATUS_RANK
from callinsight.models.rollup import CallRollup

__all__ = [
    "Tenant",
    "Agent",
    "Contact",
    "Call",
    "CallAnalysis",
    "CALL_STATUS_RANK",
    "CallRollup",
]
