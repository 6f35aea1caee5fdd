from __future__ import annotations

import functools
import logging
from dataclasses import dataclass

from fastapi import Request

from stopover_chat.application.exceptions import ConfigurationError
from stopover_chat.application.ports.conversation_store import ConversationStoragePort
from stopover_chat.application.ports.llm import CompletionPort
from stopover_chat.application.ports.session_store import SessionCachePort
from stopover_chat.application.tools.registry import ToolRegistry
from stopover_chat.application.use_cases.conversation_state_machine import ConversationStateMachine
from stopover_chat.application.use_cases.handle_chat_turn import HandleChatTurnUseCase
from stopover_chat.application.use_cases.session_coordinator import SessionCoordinator
from stopover_chat.application.utils.model_fallback import ModelFallbackChain
from stopover_chat.application.utils.resilience import ResilientExecutor
from stopover_chat.application.utils.step_transitions import TRANSITIONS, validate_transition_table
from stopover_chat.core.config import Settings
from stopover_chat.infrastructure.assets import AssetResolver
from stopover_chat.infrastructure.knowledge.catalog_store import StopoverCatalogStore
from stopover_chat.infrastructure.llm.mock_llm import MockCompletion
from stopover_chat.infrastructure.llm.openai_llm import OpenAICompletion
from stopover_chat.infrastructure.llm.prompts import build_system_prompt
from stopover_chat.infrastructure.store.conversation_actor import ConversationNamespace
from stopover_chat.infrastructure.store.json_store import JsonConversationStorage
from stopover_chat.infrastructure.store.memory_store import MemoryConversationStorage, MemorySessionCache
from stopover_chat.infrastructure.store.redis_store import RedisSessionCache, create_redis_client

logger = logging.getLogger(__name__)

FALLBACK_CONVERSATION_ID = "fallback-conversation"


@dataclass
class AppContext:
    """Everything one process needs to serve requests, built once at startup."""

    settings: Settings
    catalog: StopoverCatalogStore
    assets: AssetResolver
    executor: ResilientExecutor
    sessions: SessionCoordinator
    conversations: ConversationNamespace
    chat: HandleChatTurnUseCase | None = None
    configuration_error: ConfigurationError | None = None

    def require_chat(self) -> HandleChatTurnUseCase:
        if self.chat is None:
            raise self.configuration_error or ConfigurationError("Server configuration error")
        return self.chat

    def sweep_idle(self) -> list[str]:
        """Evict idle conversations once per sweep interval and drop their turn locks."""
        removed = self.conversations.sweep_if_due(self.settings.CONVERSATION_SWEEP_INTERVAL_SECONDS)
        if removed:
            logger.info("Swept idle conversations", extra={"reason": len(removed)})
            if self.chat is not None:
                self.chat.forget(removed)
        return removed


def build_completion(settings: Settings) -> CompletionPort:
    if settings.OPENROUTER_API_KEY:
        return OpenAICompletion(
            api_key=settings.OPENROUTER_API_KEY,
            base_url=settings.OPENROUTER_BASE_URL,
            timeout_seconds=settings.LLM_TIMEOUT_SECONDS,
        )
    if settings.is_dev:
        logger.info("Using MockCompletion (OPENROUTER_API_KEY missing, ENV=%s)", settings.ENV)
        return MockCompletion()
    raise ConfigurationError("Server configuration error", debug="OPENROUTER_API_KEY missing")


def build_session_cache(settings: Settings) -> SessionCachePort:
    if settings.REDIS_URL:
        logger.info("Using RedisSessionCache")
        return RedisSessionCache(
            create_redis_client(settings.REDIS_URL),
            default_ttl_seconds=settings.SESSION_TTL_SECONDS,
        )
    return MemorySessionCache(default_ttl_seconds=settings.SESSION_TTL_SECONDS)


def build_conversation_storage(settings: Settings) -> ConversationStoragePort:
    if settings.CONVERSATION_STORE.lower() == "json":
        return JsonConversationStorage(settings.CONVERSATION_DATA_DIR)
    return MemoryConversationStorage()


def fallback_conversation_record() -> dict:
    return {
        "success": True,
        "data": {
            "conversation_id": FALLBACK_CONVERSATION_ID,
            "messages": [],
            "booking_state": {},
            "current_step": "welcome",
            "awaiting_input": True,
            "suggested_replies": [],
        },
    }


def build_context(
    settings: Settings,
    completion: CompletionPort | None = None,
    cache: SessionCachePort | None = None,
    storage: ConversationStoragePort | None = None,
) -> AppContext:
    validate_transition_table(TRANSITIONS)

    catalog = StopoverCatalogStore()
    assets = AssetResolver(cdn_base_url=settings.ASSET_CDN_BASE_URL)
    executor = ResilientExecutor(
        max_retries=settings.PERSISTENCE_MAX_RETRIES,
        retry_delay=settings.PERSISTENCE_RETRY_DELAY,
        local_fallbacks={
            "assets:get-asset-urls": assets.local_fallbacks(),
            "durable-objects:get-state": fallback_conversation_record(),
        },
    )
    conversations = ConversationNamespace(
        storage or build_conversation_storage(settings),
        history_limit=settings.CONVERSATION_HISTORY_LIMIT,
        idle_ttl_seconds=settings.CONVERSATION_IDLE_TTL_SECONDS,
    )
    sessions = SessionCoordinator(
        cache=cache or build_session_cache(settings),
        conversations=conversations,
        executor=executor,
        assets=assets,
        session_ttl_seconds=settings.SESSION_TTL_SECONDS,
        context_ttl_seconds=settings.CONVERSATION_CONTEXT_TTL_SECONDS,
    )
    context = AppContext(
        settings=settings,
        catalog=catalog,
        assets=assets,
        executor=executor,
        sessions=sessions,
        conversations=conversations,
    )

    try:
        port = completion or build_completion(settings)
    except ConfigurationError as e:
        logger.error("Chat disabled", extra={"reason": e.debug})
        context.configuration_error = e
        return context

    context.chat = HandleChatTurnUseCase(
        chain=ModelFallbackChain(port, settings.model_chain, max_attempts=settings.MAX_MODEL_ATTEMPTS),
        registry=ToolRegistry(max_nights=settings.MAX_STOPOVER_NIGHTS),
        state_machine=ConversationStateMachine(),
        sessions=sessions,
        catalog=catalog,
        prompt_builder=functools.partial(build_system_prompt, max_nights=settings.MAX_STOPOVER_NIGHTS),
        asset_url=assets.url_for,
        temperature=settings.TEMPERATURE,
        max_tokens=settings.MAX_TOKENS,
    )
    return context


def get_app_context(request: Request) -> AppContext:
    context: AppContext = request.app.state.context
    context.sweep_idle()
    return context
