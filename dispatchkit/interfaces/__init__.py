"""Protocols for the external collaborators of the orchestration core."""

from .classification_adapter import ClassificationAdapter
from .unit_invoker import UnitInvoker

__all__ = ["ClassificationAdapter", "UnitInvoker"]
