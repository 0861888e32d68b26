"""LangSmith tracing setup and runnable config helpers."""

import logging
import os
from typing import Any, Dict, Iterable, Optional

from ..core.config import Settings

logger = logging.getLogger(__name__)

ENV_ALIASES = {
    "LANGSMITH_API_KEY": ("LANGSMITH_API_KEY", "LANGCHAIN_API_KEY"),
    "LANGSMITH_ENDPOINT": ("LANGSMITH_ENDPOINT", "LANGCHAIN_ENDPOINT"),
    "LANGSMITH_PROJECT": ("LANGSMITH_PROJECT", "LANGCHAIN_PROJECT"),
    "LANGSMITH_WORKSPACE_ID": ("LANGSMITH_WORKSPACE_ID",),
}


def initialize_langsmith(settings: Settings) -> bool:
    """
    Export LangSmith settings to the environment LangChain reads.

    Returns:
        True when tracing was requested and an API key is configured.
    """
    enabled = bool(settings.LANGSMITH_TRACING) and bool(settings.LANGSMITH_API_KEY.strip())

    os.environ["LANGSMITH_TRACING"] = "true" if settings.LANGSMITH_TRACING else "false"
    os.environ["LANGCHAIN_TRACING_V2"] = "true" if enabled else "false"

    for setting_name, env_names in ENV_ALIASES.items():
        value = getattr(settings, setting_name)
        if not value:
            continue
        for env_name in env_names:
            os.environ[env_name] = value

    if enabled:
        logger.info("LangSmith tracing enabled (project=%s)", settings.LANGSMITH_PROJECT)
    else:
        logger.info("LangSmith tracing disabled")
    return enabled


def build_trace_config(
    thread_id: str,
    tags: Optional[Iterable[str]] = None,
    metadata: Optional[Dict[str, Any]] = None,
    config: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Merge a thread id, tags and metadata into a runnable config."""
    merged = dict(config or {})

    merged["configurable"] = {**merged.get("configurable", {}), "thread_id": thread_id}

    all_tags = list(merged.get("tags", [])) + list(tags or [])
    if all_tags:
        merged["tags"] = all_tags

    all_metadata = {**merged.get("metadata", {}), **(metadata or {})}
    if all_metadata:
        merged["metadata"] = all_metadata

    return merged
