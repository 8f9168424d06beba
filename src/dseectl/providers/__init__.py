"""Reconcilers for each kind of DSEE entity."""
from __future__ import annotations

from .agent import AgentReconciler
from .base import Reconciler
from .instance import InstanceReconciler
from .registry import RegistryReconciler, RegistrySetupReconciler
from .suffix import SuffixReconciler

__all__ = [
    "AgentReconciler",
    "InstanceReconciler",
    "Reconciler",
    "RegistryReconciler",
    "RegistrySetupReconciler",
    "SuffixReconciler",
]
