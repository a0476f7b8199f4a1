"""Pydantic schemas for request/response validation"""

from callinsight.schemas.auth import (
    UserRole,
    TokenPayload,
    Principal,
)
from callinsight.schemas.analysis import (
    ParsedAnalysis,
    CallAnalysisResponse,
)
from callinsight.schemas.call import (
    CallResponse,
    CallListResponse,
)
from callinsight.schemas.agent import (
    AgentResponse,
    AgentConfigRequest,
    AgentConfigResult,
    AgentConfigResponse,
)
from callinsight.schemas.metrics import (
    MetricResponse,
)

__all__ = [
    "UserRole",
    "TokenPayload",
    "Principal",
    "ParsedAnalysis",
    "CallAnalysisResponse",
    "CallResponse",
    "CallListResponse",
    "AgentResponse",
    "AgentConfigRequest",
    "AgentConfigResult",
    "AgentConfigResponse",
    "MetricResponse",
]
