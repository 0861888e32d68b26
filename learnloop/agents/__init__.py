"""AI roles, provider routing and orchestration."""

from .orchestrator import AIResponse, OrchestrationRequest, Orchestrator
from .prompt_store import PromptStore, inject_context
from .providers import ProviderRouter
from .registry import AIRole, OutputFormat, ProviderName

__all__ = [
    "AIResponse",
    "AIRole",
    "OrchestrationRequest",
    "Orchestrator",
    "OutputFormat",
    "PromptStore",
    "ProviderName",
    "ProviderRouter",
    "inject_context",
]
