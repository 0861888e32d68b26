"""File-backed, versioned prompt templates.

Templates live at ``<prompts_dir>/<role>/v<N>.txt``; the highest N is the
latest version. Placeholders use the ``{{fieldName}}`` syntax.
"""

import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel

from ..core.exceptions import PromptNotFoundError
from .registry import AIRole

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\{\{([^}]+)\}\}")
VERSION_PATTERN = re.compile(r"^v(\d+)$")
DEFAULT_VERSION = "v1"


class PromptBuild(BaseModel):
    """A rendered system prompt and the template version it came from."""

    prompt: str
    version: str


def inject_context(template: str, context: Mapping[str, Any]) -> str:
    """
    Substitute ``{{name}}`` placeholders with context values.

    Present-but-None values render as an empty string. Placeholders with no
    matching field are deleted, so the result never contains ``{{...}}``.
    """

    def _replace(match: "re.Match[str]") -> str:
        key = match.group(1).strip()
        if key not in context:
            return ""
        value = context[key]
        return "" if value is None else str(value)

    result = PLACEHOLDER_PATTERN.sub(_replace, template)

    # Substituted values may themselves carry placeholders; strip until clean.
    while PLACEHOLDER_PATTERN.search(result):
        result = PLACEHOLDER_PATTERN.sub("", result)

    return result


class PromptStore:
    """Loads prompt templates for each AI role from a directory tree."""

    def __init__(self, prompts_dir: Union[str, Path]):
        self.prompts_dir = Path(prompts_dir)

    def _role_dir(self, role: AIRole) -> Path:
        return self.prompts_dir / AIRole(role).value

    def available_versions(self, role: AIRole) -> List[str]:
        """All template versions for a role, newest first."""
        role_dir = self._role_dir(role)
        if not role_dir.is_dir():
            return []

        versions = []
        for path in role_dir.glob("*.txt"):
            match = VERSION_PATTERN.match(path.stem)
            if match:
                versions.append((int(match.group(1)), path.stem))

        return [name for _, name in sorted(versions, reverse=True)]

    def latest_version(self, role: AIRole) -> str:
        versions = self.available_versions(role)
        return versions[0] if versions else DEFAULT_VERSION

    def _load(self, role: AIRole, version: Optional[str]) -> tuple[str, str]:
        target = version or self.latest_version(role)
        path = self._role_dir(role) / f"{target}.txt"
        if path.is_file():
            return path.read_text(encoding="utf-8"), target

        latest = self.latest_version(role)
        fallback_path = self._role_dir(role) / f"{latest}.txt"
        if not fallback_path.is_file():
            raise PromptNotFoundError(AIRole(role).value)

        logger.warning(
            "Prompt %s/%s not found, using %s",
            AIRole(role).value,
            target,
            latest,
        )
        return fallback_path.read_text(encoding="utf-8"), latest

    def load_template(self, role: AIRole, version: Optional[str] = None) -> str:
        """
        Load a template, falling back to the latest version when the
        requested one is missing.

        Raises:
            PromptNotFoundError: The role has no template at all
        """
        template, _ = self._load(role, version)
        return template

    def build_prompt(
        self,
        role: AIRole,
        context: Dict[str, Any],
        version: Optional[str] = None,
    ) -> PromptBuild:
        """Render the role's template with the given context."""
        template, actual_version = self._load(role, version)
        return PromptBuild(prompt=inject_context(template, context), version=actual_version)
