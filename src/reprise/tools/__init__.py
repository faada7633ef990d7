"""Tool definitions, callbacks, and composite dispatch."""

from reprise.tools.callbacks import CallOutcome, ToolOptions, execute_with_callbacks
from reprise.tools.composite import (
    CompositeBatch,
    CompositeDispatcher,
    SubAgentDefinition,
    SubCallResult,
    SubToolDefinition,
    sub_agent,
    sub_tool,
)
from reprise.tools.registry import EmptyInput, ToolDefinition, ToolRegistry

__all__ = [
    "CallOutcome",
    "CompositeBatch",
    "CompositeDispatcher",
    "EmptyInput",
    "SubAgentDefinition",
    "SubCallResult",
    "SubToolDefinition",
    "ToolDefinition",
    "ToolOptions",
    "ToolRegistry",
    "execute_with_callbacks",
    "sub_agent",
    "sub_tool",
]
