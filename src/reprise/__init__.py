"""reprise - declarative, re-executing prompt programs."""

from reprise.agents import AgentOptions, AgentResult
from reprise.config import Settings, get_settings
from reprise.definitions import DefinitionHandle, DefinitionKind
from reprise.effects import HookResult
from reprise.history import CompressedHistory, StepHistoryCompressor
from reprise.prompt import Prompt
from reprise.runner import RunResult, StepLoop, run_prompt
from reprise.tools import ToolOptions, sub_agent, sub_tool

__version__ = "0.1.0"

__all__ = [
    "AgentOptions",
    "AgentResult",
    "CompressedHistory",
    "DefinitionHandle",
    "DefinitionKind",
    "HookResult",
    "Prompt",
    "RunResult",
    "Settings",
    "StepHistoryCompressor",
    "StepLoop",
    "ToolOptions",
    "get_settings",
    "run_prompt",
    "sub_agent",
    "sub_tool",
]
