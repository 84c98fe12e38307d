"""
External Synthesis Engines.

    - registry.py: EngineId, per-engine command handlers, EngineRegistry
    - invoker.py: ProcessInvoker (timeouts, cancellation, process cap)
"""
from .invoker import CommandSpec, ProcessInvoker
from .registry import EngineHandler, EngineId, EngineRegistry, EngineUnavailable, build_handler

__all__ = [
    "CommandSpec",
    "ProcessInvoker",
    "EngineId",
    "EngineHandler",
    "EngineRegistry",
    "EngineUnavailable",
    "build_handler",
]
