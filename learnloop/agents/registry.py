"""AI role registry.

Static mapping from each AI role to the provider that serves it and the
output format its prompts ask for. Not configurable at runtime.
"""

from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from pydantic import BaseModel

if TYPE_CHECKING:
    from .prompt_store import PromptStore


class AIRole(str, Enum):
    """The five AI personas."""

    PLANNER = "planner"
    TUTOR = "tutor"
    EXAMINER = "examiner"
    COACH = "coach"
    REVIEWER = "reviewer"


class ProviderName(str, Enum):
    """LLM backends. OpenAI is the primary; DeepSeek falls back to it."""

    OPENAI = "openai"
    DEEPSEEK = "deepseek"


class OutputFormat(str, Enum):
    TEXT = "text"
    JSON = "json"


class RoleMetadata(BaseModel):
    """Provider and output contract of one role."""

    name: str
    provider: ProviderName
    output_format: OutputFormat


ROLE_METADATA: Dict[AIRole, RoleMetadata] = {
    AIRole.PLANNER: RoleMetadata(name="Planner", provider=ProviderName.OPENAI, output_format=OutputFormat.JSON),
    AIRole.TUTOR: RoleMetadata(name="Tutor", provider=ProviderName.DEEPSEEK, output_format=OutputFormat.TEXT),
    AIRole.EXAMINER: RoleMetadata(name="Examiner", provider=ProviderName.OPENAI, output_format=OutputFormat.JSON),
    AIRole.COACH: RoleMetadata(name="Coach", provider=ProviderName.DEEPSEEK, output_format=OutputFormat.JSON),
    AIRole.REVIEWER: RoleMetadata(name="Reviewer", provider=ProviderName.OPENAI, output_format=OutputFormat.JSON),
}


# Default interaction type recorded for each role's exchanges.
DEFAULT_INTERACTION_TYPES: Dict[AIRole, str] = {
    AIRole.TUTOR: "EXPLANATION",
    AIRole.EXAMINER: "EVALUATION",
    AIRole.COACH: "DECISION",
    AIRole.PLANNER: "PLANNING",
    AIRole.REVIEWER: "REVIEW",
}


def role_metadata(role: AIRole) -> RoleMetadata:
    return ROLE_METADATA[AIRole(role)]


def provider_for_role(role: AIRole) -> ProviderName:
    return role_metadata(role).provider


def response_format_for_role(role: AIRole) -> OutputFormat:
    return role_metadata(role).output_format


def list_roles(prompt_store: Optional["PromptStore"] = None) -> List[Dict[str, Any]]:
    """
    Describe every role for discovery endpoints.

    Args:
        prompt_store: When given, each entry lists the role's template versions

    Returns:
        List of dicts with id, name, provider, output_format and versions
    """
    roles = []
    for role, meta in ROLE_METADATA.items():
        roles.append({
            "id": role.value,
            "name": meta.name,
            "provider": meta.provider.value,
            "output_format": meta.output_format.value,
            "versions": prompt_store.available_versions(role) if prompt_store else [],
        })
    return roles
