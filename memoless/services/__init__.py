"""Service modules"""
from .assets import AssetCatalog
from .engine import MemolessEngine
from .tracker import DepositTracker
from .workflow import MemoRegistrationWorkflow, WorkflowSnapshot, WorkflowState

__all__ = [
    "AssetCatalog",
    "DepositTracker",
    "MemoRegistrationWorkflow",
    "MemolessEngine",
    "WorkflowSnapshot",
    "WorkflowState",
]
