"""Controller runtime: watch loop, keyed work queue, reconcile results."""

from apim_operator.runtime.controller import (
    Controller,
    GenerationChanged,
    accept_all,
    added_only,
    object_key,
)
from apim_operator.runtime.results import ReconcileResult
from apim_operator.runtime.work_queue import KeyedWorkQueue

__all__ = [
    "Controller",
    "GenerationChanged",
    "KeyedWorkQueue",
    "ReconcileResult",
    "accept_all",
    "added_only",
    "object_key",
]
