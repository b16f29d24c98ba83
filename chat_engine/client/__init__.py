"""
Chat Client Module

Turns pushed generation events into a stable, split transcript.

Usage:
    from chat_engine.client import GenerationController

    controller = GenerationController(backend)
    controller.on_change = lambda turn: update_ui(controller.render(turn))
    await controller.send("Hello")
"""

from .controller import (
    ERROR_PREFIX,
    TYPING_PLACEHOLDER,
    ControllerState,
    GenerationController,
    GenerationSession,
)
from .events import EventBus, Subscription, SubscriptionPair, safe_release
from .reconciler import (
    DeltaReconciler,
    ReconcileResult,
    collapse_markers,
    overlap_length,
    reconcile,
    trim_overlap,
)
from .tags import TagParseResult, parse, strip_markers

__all__ = [
    "ERROR_PREFIX",
    "TYPING_PLACEHOLDER",
    "ControllerState",
    "DeltaReconciler",
    "EventBus",
    "GenerationController",
    "GenerationSession",
    "ReconcileResult",
    "Subscription",
    "SubscriptionPair",
    "TagParseResult",
    "collapse_markers",
    "overlap_length",
    "parse",
    "reconcile",
    "safe_release",
    "strip_markers",
    "trim_overlap",
]
