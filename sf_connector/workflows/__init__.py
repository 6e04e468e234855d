"""Multi-step connector workflows"""
from sf_connector.workflows.special_types import RetrievalOrchestrator, RetrievalPhase, read_user_permissions

__all__ = [
    "RetrievalOrchestrator",
    "RetrievalPhase",
    "read_user_permissions",
]
