"""Central AI orchestrator.

Every AI role interaction flows through ``Orchestrator.orchestrate``:

1. Seed a prompt context from the user message and caller-supplied fields
2. Merge in assembled context (content, concept, RAG, session history)
3. Render the role's prompt template
4. Dispatch to the role's provider (retry / fallback inside the adapters)
5. Estimate cost
6. Resolve the session the exchange belongs to
7. Persist the interaction
"""

import logging
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..core.exceptions import SessionNotFoundError
from ..db.repository import Repository
from .context import ContextAssembler
from .parsing import parse_ai_json
from .prompt_store import PromptStore
from .providers import LLMOptions, ProviderRouter, TokenUsage, estimate_cost
from .registry import DEFAULT_INTERACTION_TYPES, AIRole, ProviderName

logger = logging.getLogger(__name__)

ConfidenceScorer = Callable[[str], Optional[float]]


class OrchestrationRequest(BaseModel):
    """One AI role request."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    role: AIRole
    user_message: str
    content_id: Optional[str] = None
    concept_id: Optional[str] = None
    session_id: Optional[str] = None
    additional_context: Dict[str, Any] = Field(default_factory=dict)
    prompt_version: Optional[str] = None
    interaction_type: Optional[str] = None
    # Maps the raw AI text to the interaction's confidence score (0-1).
    confidence_scorer: Optional[ConfidenceScorer] = None
    options: Optional[LLMOptions] = None


class UsageWithCost(TokenUsage):
    estimated_cost: float = 0.0


class AIResponse(BaseModel):
    content: str
    role: AIRole
    provider: ProviderName
    prompt_version: str
    usage: UsageWithCost
    interaction_id: str = ""


class Orchestrator:
    """Single choke point for AI calls; owns no state of its own."""

    def __init__(
        self,
        repository: Repository,
        router: ProviderRouter,
        prompt_store: PromptStore,
        assembler: ContextAssembler,
    ):
        self.repository = repository
        self.router = router
        self.prompt_store = prompt_store
        self.assembler = assembler

    async def build_context(self, request: OrchestrationRequest) -> Dict[str, Any]:
        """
        Seed from the user message and additional context, then merge the
        assembled context over it. ``userMessage`` is never overwritten.
        """
        context: Dict[str, Any] = {
            **request.additional_context,
            "userMessage": request.user_message,
        }

        if request.content_id or request.concept_id:
            assembled = await self.assembler.assemble(
                content_id=request.content_id,
                concept_id=request.concept_id,
                session_id=request.session_id,
            )
            context = {**context, **assembled, "userMessage": request.user_message}

        return context

    async def orchestrate(self, user_id: str, request: OrchestrationRequest) -> AIResponse:
        """
        Run one AI exchange end to end.

        Raises:
            ProviderError: The provider call failed after retries and
                fallback. Nothing is persisted in that case.
            PromptNotFoundError: The role has no prompt template
            SessionNotFoundError: `session_id` is unknown or belongs to
                another user
        """
        role = AIRole(request.role)
        if request.session_id:
            await self._check_session_owner(user_id, request.session_id)
        context = await self.build_context(request)

        built = self.prompt_store.build_prompt(role, context, request.prompt_version)

        response = await self.router.route(
            role,
            built.prompt,
            request.user_message,
            request.options,
        )

        estimated_cost = estimate_cost(
            response.provider,
            response.usage.prompt_tokens,
            response.usage.completion_tokens,
        )

        session_id = await self._resolve_session(user_id, request)

        interaction_id = ""
        if session_id:
            confidence = None
            if request.confidence_scorer is not None:
                confidence = request.confidence_scorer(response.content)

            interaction = await self.repository.create_interaction(
                session_id=session_id,
                concept_id=request.concept_id,
                role=role.value,
                user_message=request.user_message,
                ai_response=response.content,
                interaction_type=request.interaction_type or DEFAULT_INTERACTION_TYPES[role],
                tokens_used=response.usage.total_tokens,
                confidence_score=confidence,
                prompt_version=built.version,
                provider=response.provider.value,
                estimated_cost=estimated_cost,
            )
            interaction_id = interaction.id

        logger.info(
            "AI [%s] via %s - %d tokens (~$%.4f)",
            role.value,
            response.provider.value,
            response.usage.total_tokens,
            estimated_cost,
        )

        return AIResponse(
            content=response.content,
            role=role,
            provider=response.provider,
            prompt_version=built.version,
            usage=UsageWithCost(
                **response.usage.model_dump(),
                estimated_cost=estimated_cost,
            ),
            interaction_id=interaction_id,
        )

    async def _check_session_owner(self, user_id: str, session_id: str) -> None:
        session = await self.repository.get_session(session_id)
        if session is None or session.user_id != user_id:
            raise SessionNotFoundError(session_id)

    async def _resolve_session(self, user_id: str, request: OrchestrationRequest) -> Optional[str]:
        """
        Explicit session, else the user's ACTIVE session for the content.

        A missing ACTIVE session is created for every role but the planner.
        """
        if request.session_id:
            return request.session_id
        if not request.content_id:
            return None

        existing = await self.repository.find_active_session(user_id, request.content_id)
        if existing:
            return existing.id
        if AIRole(request.role) == AIRole.PLANNER:
            # A map is planned before any session can start on it.
            return None

        first_concept_id = None
        learning_map = await self.repository.get_learning_map(request.content_id)
        if learning_map:
            first = await self.repository.first_concept(learning_map.id)
            first_concept_id = first.id if first else None

        session = await self.repository.create_session(
            user_id=user_id,
            content_id=request.content_id,
            current_concept_id=first_concept_id,
        )
        logger.info("Created session %s for user %s on content %s", session.id, user_id, request.content_id)
        return session.id


__all__ = [
    "AIResponse",
    "ConfidenceScorer",
    "Orchestrator",
    "OrchestrationRequest",
    "UsageWithCost",
    "parse_ai_json",
]
