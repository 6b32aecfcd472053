"""
Generation Orchestrator
=======================

The orchestrator owns the lifecycle of every generation: it resolves the
model, the API key and the conversation synchronously, answers the HTTP
request immediately, and then runs the generation as an independent asyncio
task that persists its progress to the store.

THE GENERATION LIFECYCLE:
-------------------------

┌─────────────────────────────────────────────────────────────────┐
│ SYNCHRONOUS (before the response is sent)                       │
│ - Validate the request, resolve the model (auto-enable it from  │
│   the gateway catalog when needed) and the API key              │
│ - Reject double submission (409) before any row is written      │
│ - Create or reuse the conversation and the user message         │
│ - Register a cancellation handle and spawn the run              │
└─────────────────────────────────────────────────────────────────┘
                            ↓
┌─────────────────────────────────────────────────────────────────┐
│ BACKGROUND RUN (one asyncio.Task per conversation)              │
│ TEXT:  history → web search → URL scrape → memory → rules →     │
│        system prompt → compression → placeholder → stream →     │
│        finalize → persistent memory update                      │
│ IMAGE: placeholder → submit → store image → finalize            │
│ VIDEO: placeholder → submit → poll status → finalize            │
└─────────────────────────────────────────────────────────────────┘
                            ↓
┌─────────────────────────────────────────────────────────────────┐
│ CLEANUP (every exit path)                                       │
│ - `generating` cleared, cancellation handle released            │
│ - Stage timings logged and discarded                            │
└─────────────────────────────────────────────────────────────────┘

STATE MACHINE:
--------------
Idle → AwaitingModel → ModeDispatch → {Text|Image|Video}Generating →
Finalizing → {Completed | Failed | Cancelled}

Enrichment failures never fail a run; provider and store failures do
(the assistant message gets an `error` and generation stops, no retries).
Cancellation is cooperative: the handle is checked before the run starts,
before the stream is opened, before every chunk and before every media poll.

DEPENDENCY INJECTION PATTERN:
------------------------------
Every collaborator (store, registry, providers, enrichment services) is
passed in through the constructor, so tests run the full pipeline against
the in-memory store, the fake provider and mocked HTTP transports.
"""

import asyncio
from collections import OrderedDict
from collections.abc import Coroutine
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any

from nanochat.core.config.constants import (
    CANCELLED_ERROR_TEXT,
    COMPLETION_TEMPERATURE,
    GENERATION_STATE_HISTORY_LIMIT,
    MessageRole,
    ModelMode,
    Provider,
    Stage,
    GenerationState,
)
from nanochat.core.exceptions import (
    CatalogUnavailableError,
    ConversationNotFoundError,
    GenerationCancelledError,
    GenerationInProgressError,
    InvalidInputError,
    ModelNotEnabledError,
    NanoChatError,
)
from nanochat.core.interfaces import ChatStore, FileStorage
from nanochat.core.logging import get_logger, log_stage, set_conversation_id
from nanochat.core.models import (
    Conversation,
    EnabledModel,
    GenerationContext,
    Message,
    ModelDescriptor,
    ModelPricing,
    UserRule,
)
from nanochat.core.observability import ExecutionTracker, get_tracker
from nanochat.llm_stream.models import GenerationRequest
from nanochat.llm_stream.providers import BaseProvider
from nanochat.services.attachments import resolve_image_url
from nanochat.services.cancellation import CancellationRegistry
from nanochat.services.cost import TokenUsage, calculate_message_cost
from nanochat.services.credential_resolver import CredentialResolver
from nanochat.services.enrichment import (
    MemoryService,
    UrlScraper,
    WebSearchProvider,
    collect_rules,
    format_rules_block,
    memory_context_block,
)
from nanochat.services.media import IMAGE_PLACEHOLDER, VIDEO_PLACEHOLDER, MediaGenerator
from nanochat.services.model_catalog import ModelCatalog
from nanochat.services.rendering import render_markdown
from nanochat.services.title_generator import TitleGenerator

logger = get_logger(__name__)

SEARCH_INSTRUCTIONS = (
    "Instructions: Use the above search results to answer the user's query. "
    "Cite your sources where possible. If the results are not relevant, you can ignore them."
)
NO_USER_MESSAGE_ERROR = "No user message found"
EMPTY_RESPONSE_ERROR = "No content generated"
INTERRUPTED_ERROR = "Generation was interrupted"


def build_system_content(
    memory: str | None,
    scraped: str | None,
    search_context: str | None,
    rules: list[UserRule],
) -> str:
    """System prompt: memory, scraped pages, search results, rules (in that order)."""
    content = ""
    if memory:
        content += memory_context_block(memory)
    if scraped:
        content += scraped
    if search_context:
        content += f"{search_context}\n\n{SEARCH_INSTRUCTIONS}\n\n"
    content += format_rules_block(rules)
    return content


@dataclass
class RunProgress:
    """Mutable progress of one run (what has been persisted so far)."""

    message_id: str | None = None
    content: str = ""
    reasoning: str = ""
    annotations: list[dict[str, Any]] = field(default_factory=list)
    generation_id: str | None = None
    usage: TokenUsage | None = None
    search_cost: float = 0.0
    scrape_cost: float = 0.0
    stored_memory: str | None = None
    history: list[dict[str, Any]] = field(default_factory=list)


class GenerationOrchestrator:
    """
    Central coordinator for generation runs.

    Usage:
        conversation_id = await orchestrator.start_generation(user_id, request)
        ...
        cancelled = await orchestrator.cancel_generation(user_id, conversation_id)

    Background tasks are held by the orchestrator (strong references) until
    they finish; `drain()` waits for all of them.
    """

    def __init__(
        self,
        store: ChatStore,
        registry: CancellationRegistry,
        credentials: CredentialResolver,
        catalog: ModelCatalog,
        provider: BaseProvider,
        media: MediaGenerator,
        web_search: WebSearchProvider,
        scraper: UrlScraper,
        memory: MemoryService,
        titles: TitleGenerator | None = None,
        file_storage: FileStorage | None = None,
        tracker: ExecutionTracker | None = None,
        state_history_limit: int = GENERATION_STATE_HISTORY_LIMIT,
    ):
        self._store = store
        self._registry = registry
        self._credentials = credentials
        self._catalog = catalog
        self._provider = provider
        self._media = media
        self._web_search = web_search
        self._scraper = scraper
        self._memory = memory
        self._titles = titles
        self._file_storage = file_storage
        self._tracker = tracker or get_tracker()

        self._tasks: set[asyncio.Task] = set()
        self._runs: dict[str, GenerationContext] = {}
        self._awaiting_model: set[str] = set()
        # terminal states of recent runs, oldest first
        self._last_states: OrderedDict[str, GenerationState] = OrderedDict()
        self._state_history_limit = state_history_limit

    # ========================================================================
    # Public API
    # ========================================================================

    @property
    def active_generations(self) -> int:
        return self._registry.active_count()

    def get_state(self, conversation_id: str) -> GenerationState:
        """
        State of the current run, or the terminal state of the last one.

        Only the most recent `state_history_limit` finished runs are
        remembered; older conversations report IDLE.
        """
        ctx = self._runs.get(conversation_id)
        if ctx is not None:
            return ctx.state
        if conversation_id in self._awaiting_model:
            return GenerationState.AWAITING_MODEL
        return self._last_states.get(conversation_id, GenerationState.IDLE)

    async def start_generation(self, user_id: str, request: GenerationRequest) -> str:
        """
        Validate and set up a generation, spawn it, and return the conversation id.

        Raises:
            InvalidInputError: No message and no conversation id
            ModelNotEnabledError: Model not enabled and not in the catalog
            CredentialNotConfiguredError: No API key for the user
            ConversationNotFoundError: Conversation missing or foreign
            GenerationInProgressError: A run is already active for the conversation
        """
        if request.conversation_id:
            set_conversation_id(request.conversation_id)

        if request.conversation_id is None and request.message is None:
            raise InvalidInputError("You must provide a message when creating a new conversation")

        log_stage(logger, Stage.MODEL_RESOLUTION, "Resolving model", model_id=request.model_id)
        if request.conversation_id:
            self._awaiting_model.add(request.conversation_id)
        try:
            model = await self._resolve_model(user_id, request.model_id)
        finally:
            if request.conversation_id:
                self._awaiting_model.discard(request.conversation_id)

        api_key = await self._credentials.resolve(user_id, Provider.NANOGPT)

        rules, user_settings = await asyncio.gather(
            self._store.list_user_rules(user_id),
            self._store.get_user_settings(user_id),
        )

        if request.conversation_id:
            conversation_id, user_message, handle = await self._continue_conversation(user_id, request)
            is_new = False
        else:
            conversation_id, user_message, handle = await self._create_conversation(user_id, request)
            is_new = True

        ctx = GenerationContext(
            user_id=user_id,
            conversation_id=conversation_id,
            api_key=api_key,
            model_id=request.model_id,
            model=model,
            rules=rules,
            user_settings=user_settings,
            user_message=user_message,
            is_new_conversation=is_new,
            reasoning_effort=request.reasoning_effort,
            web_search_mode=request.search_depth,
            handle=handle,
            state=GenerationState.AWAITING_MODEL,
        )
        self._transition(ctx, GenerationState.MODE_DISPATCH)
        self._runs[conversation_id] = ctx

        log_stage(
            logger,
            Stage.MODE_DISPATCH,
            "Generation dispatched",
            conversation_id=conversation_id,
            mode=ctx.mode.value,
            new_conversation=is_new,
        )
        self._spawn(self._run(ctx), name=f"generation-{conversation_id}")

        if is_new and self._titles is not None and request.message:
            self._spawn(
                self._background(
                    Stage.TITLE,
                    self._titles.generate(conversation_id, request.message, api_key),
                ),
                name=f"title-{conversation_id}",
            )

        return conversation_id

    async def cancel_generation(self, user_id: str, conversation_id: str) -> bool:
        """
        Signal the run of a conversation.

        Returns:
            True if a run was active and has been signalled

        Raises:
            ConversationNotFoundError: Conversation missing or foreign
        """
        conversation = await self._store.get_conversation(conversation_id)
        if conversation is None or conversation.user_id != user_id:
            raise ConversationNotFoundError(
                "Conversation not found or unauthorized", conversation_id=conversation_id
            )

        cancelled = self._registry.cancel(conversation_id)
        if cancelled:
            await self._store.set_generating(conversation_id, False)
        log_stage(
            logger,
            Stage.CANCELLATION,
            "Cancel requested",
            conversation_id=conversation_id,
            cancelled=cancelled,
        )
        return cancelled

    async def drain(self) -> None:
        """Wait until every background task (runs, titles, memory updates) is done."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self, timeout: float = 10.0) -> None:
        """Cancel active runs, give them `timeout` seconds to finalize, then stop them."""
        for conversation_id in list(self._runs):
            self._registry.cancel(conversation_id)

        if not self._tasks:
            return
        _, pending = await asyncio.wait(list(self._tasks), timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def reconcile_orphaned_generations(self) -> int:
        """
        Clear `generating` on conversations with no live run (left over from a
        crash) and mark their unfinished assistant messages as failed.

        Returns:
            Number of conversations reconciled
        """
        reconciled = 0
        for conversation in await self._store.list_generating_conversations():
            if self._registry.is_active(conversation.id):
                continue
            for message in await self._store.list_messages(conversation.id):
                if message.role == MessageRole.ASSISTANT and not message.finalized:
                    await self._store.finalize_message(message.id, error=INTERRUPTED_ERROR)
            await self._store.set_generating(conversation.id, False)
            reconciled += 1

        if reconciled:
            logger.warning("Reconciled orphaned generations", count=reconciled)
        return reconciled

    # ========================================================================
    # Synchronous setup
    # ========================================================================

    async def _resolve_model(self, user_id: str, model_id: str) -> ModelDescriptor | None:
        """
        Resolve the descriptor of an enabled model, auto-enabling it from the
        catalog when needed. A catalog failure leaves the descriptor unknown
        (TEXT mode) for enabled models and rejects models that are not enabled.
        """
        enabled = await self._store.get_enabled_model(user_id, model_id)

        try:
            descriptor = await self._catalog.get_model(model_id)
        except CatalogUnavailableError as e:
            log_stage(
                logger,
                Stage.MODEL_RESOLUTION,
                "Model catalog unavailable",
                level="warning",
                model_id=model_id,
                error=e.message,
            )
            descriptor = None

        if enabled is not None:
            return descriptor

        if descriptor is None:
            raise ModelNotEnabledError("Model not found or not enabled", details={"model_id": model_id})

        await self._store.add_enabled_model(
            EnabledModel(user_id=user_id, model_id=model_id, provider=Provider.NANOGPT)
        )
        log_stage(logger, Stage.MODEL_RESOLUTION, "Model auto-enabled", model_id=model_id)
        return descriptor

    def _user_message(self, conversation_id: str, request: GenerationRequest) -> Message:
        return Message(
            conversation_id=conversation_id,
            role=MessageRole.USER,
            content=request.message or "",
            model_id=request.model_id,
            reasoning_effort=request.reasoning_effort,
            images=request.attachments(),
            web_search_enabled=request.search_enabled,
        )

    async def _create_conversation(self, user_id: str, request: GenerationRequest):
        conversation = Conversation(user_id=user_id, generating=True, cost_usd=0.0)
        set_conversation_id(conversation.id)

        handle = self._registry.register(conversation.id)
        try:
            await self._store.create_conversation(conversation)
            user_message = await self._store.create_message(self._user_message(conversation.id, request))
        except BaseException:
            self._registry.release(conversation.id, handle)
            raise

        log_stage(logger, Stage.CONVERSATION_SETUP, "New conversation and message created")
        return conversation.id, user_message, handle

    async def _continue_conversation(self, user_id: str, request: GenerationRequest):
        conversation_id = request.conversation_id
        conversation = await self._store.get_conversation(conversation_id)
        if conversation is None or conversation.user_id != user_id:
            raise ConversationNotFoundError(
                "Conversation not found or unauthorized", conversation_id=conversation_id
            )

        if conversation.generating or self._registry.is_active(conversation_id):
            raise GenerationInProgressError(
                "A generation is already in progress for this conversation",
                conversation_id=conversation_id,
            )

        handle = self._registry.register(conversation_id)
        try:
            if not await self._store.try_start_generation(conversation_id):
                raise GenerationInProgressError(
                    "A generation is already in progress for this conversation",
                    conversation_id=conversation_id,
                )
        except BaseException:
            self._registry.release(conversation_id, handle)
            raise

        user_message = None
        try:
            if request.message:
                user_message = await self._store.create_message(
                    self._user_message(conversation_id, request)
                )
        except BaseException:
            self._registry.release(conversation_id, handle)
            await self._store.set_generating(conversation_id, False)
            raise

        log_stage(
            logger,
            Stage.CONVERSATION_SETUP,
            "Using existing conversation",
            user_message_created=user_message is not None,
        )
        return conversation_id, user_message, handle

    # ========================================================================
    # Background run
    # ========================================================================

    def _spawn(self, coro: Coroutine, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _background(self, stage: Stage, coro: Coroutine) -> None:
        """Run a fire-and-forget helper; its failure is logged, never raised."""
        try:
            await coro
        except Exception as e:
            log_stage(
                logger,
                stage,
                "Background task failed",
                level="warning",
                error_type=type(e).__name__,
                error=str(e),
            )

    def _transition(self, ctx: GenerationContext, state: GenerationState) -> None:
        log_stage(
            logger,
            Stage.MODE_DISPATCH,
            "Generation state changed",
            level="debug",
            from_state=ctx.state.value,
            to_state=state.value,
        )
        ctx.state = state

    async def _run(self, ctx: GenerationContext) -> GenerationState:
        set_conversation_id(ctx.conversation_id)
        progress = RunProgress()

        try:
            if ctx.handle.cancelled:
                raise GenerationCancelledError(CANCELLED_ERROR_TEXT, conversation_id=ctx.conversation_id)

            if ctx.mode == ModelMode.IMAGE:
                self._transition(ctx, GenerationState.IMAGE_GENERATING)
                await self._generate_image(ctx, progress)
            elif ctx.mode == ModelMode.VIDEO:
                self._transition(ctx, GenerationState.VIDEO_GENERATING)
                await self._generate_video(ctx, progress)
            else:
                self._transition(ctx, GenerationState.TEXT_GENERATING)
                await self._generate_text(ctx, progress)

        except GenerationCancelledError:
            await self._fail(ctx, progress, CANCELLED_ERROR_TEXT, GenerationState.CANCELLED)

        except asyncio.CancelledError:
            await asyncio.shield(self._fail(ctx, progress, INTERRUPTED_ERROR, GenerationState.FAILED))
            raise

        except NanoChatError as e:
            await self._fail(ctx, progress, e.message, GenerationState.FAILED)

        except Exception as e:
            logger.exception("Generation failed", error_type=type(e).__name__)
            await self._fail(ctx, progress, f"Stream processing error: {e}", GenerationState.FAILED)

        finally:
            await self._cleanup(ctx)

        return ctx.state

    async def _clear_generating(self, ctx: GenerationContext) -> None:
        """Clear the flag unless a newer run already owns the conversation."""
        if not self._registry.is_active(ctx.conversation_id):
            await self._store.set_generating(ctx.conversation_id, False)

    async def _cleanup(self, ctx: GenerationContext) -> None:
        self._registry.release(ctx.conversation_id, ctx.handle)
        try:
            await self._clear_generating(ctx)
        except Exception as e:
            log_stage(logger, Stage.CLEANUP, "Failed to clear generating flag", level="error", error=str(e))

        summary = self._tracker.get_execution_summary(ctx.conversation_id)
        log_stage(
            logger,
            Stage.CLEANUP,
            "Generation finished",
            state=ctx.state.value,
            total_duration_ms=summary["total_duration_ms"],
            stage_count=summary["stage_count"],
        )
        self._tracker.clear_run_data(ctx.conversation_id)
        if self._runs.get(ctx.conversation_id) is ctx:
            self._runs.pop(ctx.conversation_id)
        self._remember_state(ctx)

    def _remember_state(self, ctx: GenerationContext) -> None:
        self._last_states[ctx.conversation_id] = ctx.state
        self._last_states.move_to_end(ctx.conversation_id)
        while len(self._last_states) > self._state_history_limit:
            self._last_states.popitem(last=False)

    async def _fail(
        self,
        ctx: GenerationContext,
        progress: RunProgress,
        error: str,
        state: GenerationState,
    ) -> None:
        log_stage(logger, Stage.FINALIZE, "Generation ended with error", level="warning", error=error, state=state.value)
        self._transition(ctx, state)
        if progress.message_id is None:
            return
        try:
            fields: dict[str, Any] = {"error": error}
            if progress.content:
                fields["content_html"] = render_markdown(progress.content)
            await self._store.finalize_message(progress.message_id, **fields)
        except Exception as e:
            log_stage(logger, Stage.FINALIZE, "Failed to record generation error", level="error", error=str(e))

    # ------------------------------------------------------------------------
    # Text
    # ------------------------------------------------------------------------

    async def _generate_text(self, ctx: GenerationContext, progress: RunProgress) -> None:
        cid = ctx.conversation_id
        track = self._tracker.track_stage

        with track(Stage.HISTORY_LOAD, "Load history", cid):
            history = await self._store.list_messages(cid)
        last_user = next((m for m in reversed(history) if m.role == MessageRole.USER), None)

        search_context = None
        if last_user is not None and last_user.web_search_enabled:
            with track(Stage.WEB_SEARCH, "Web search", cid, depth=ctx.web_search_mode.value):
                result = await self._web_search.search(last_user.content, ctx.api_key, ctx.web_search_mode)
            if result.ok:
                search_context = result.value
                progress.search_cost = result.cost

        scraped = None
        if last_user is not None:
            with track(Stage.URL_SCRAPE, "URL scrape", cid):
                result = await self._scraper.scrape_message(last_user.content, ctx.api_key)
            if result.ok and result.value.success_count:
                scraped = result.value.content
                progress.scrape_cost = result.cost

        if ctx.user_settings.persistent_memory_enabled:
            with track(Stage.MEMORY_FETCH, "Persistent memory fetch", cid):
                result = await self._memory.fetch(ctx.user_id)
            if result.ok:
                progress.stored_memory = result.value

        with track(Stage.RULES, "Collect rules", cid):
            rules = collect_rules(ctx.rules, (m.content for m in history))

        with track(Stage.PROMPT_ASSEMBLY, "Assemble prompt", cid):
            formatted = await self._format_history(history)
            system_content = build_system_content(progress.stored_memory, scraped, search_context, rules)
        progress.history = formatted

        final_messages = formatted
        if ctx.user_settings.context_memory_enabled:
            with track(Stage.CONTEXT_COMPRESSION, "Context compression", cid):
                result = await self._memory.compress(formatted, ctx.api_key)
            if result.ok:
                final_messages = result.value

        assistant = await self._store.create_message(
            Message(
                conversation_id=cid,
                role=MessageRole.ASSISTANT,
                content="",
                model_id=ctx.model_id,
                provider=Provider.NANOGPT.value,
                web_search_enabled=bool(last_user and last_user.web_search_enabled),
                reasoning_effort=ctx.reasoning_effort,
            )
        )
        progress.message_id = assistant.id

        if last_user is None:
            raise InvalidInputError(NO_USER_MESSAGE_ERROR, conversation_id=cid)

        messages_to_send = list(final_messages)
        if system_content:
            messages_to_send.append({"role": MessageRole.SYSTEM.value, "content": system_content})

        if ctx.handle.cancelled:
            raise GenerationCancelledError(CANCELLED_ERROR_TEXT, conversation_id=cid)

        cancelled = False
        with track(Stage.STREAMING, "Stream completion", cid, model=ctx.model_id):
            cancelled = await self._stream(ctx, progress, messages_to_send)

        self._transition(ctx, GenerationState.FINALIZING)
        with track(Stage.FINALIZE, "Finalize message", cid):
            await self._finalize_text(ctx, progress, cancelled)

        if cancelled:
            self._transition(ctx, GenerationState.CANCELLED)
            return

        self._transition(ctx, GenerationState.COMPLETED)

        if ctx.user_settings.persistent_memory_enabled and progress.content:
            self._spawn(
                self._background(
                    Stage.MEMORY_UPDATE,
                    self._memory.update(
                        ctx.user_id, progress.stored_memory, progress.history, progress.content, ctx.api_key
                    ),
                ),
                name=f"memory-{cid}",
            )

    async def _stream(
        self, ctx: GenerationContext, progress: RunProgress, messages: list[dict[str, Any]]
    ) -> bool:
        """Consume the completion stream; returns True if it was cut short by cancellation."""
        reasoning_effort = ctx.reasoning_effort.value if ctx.reasoning_effort else None
        stream = self._provider.stream(
            messages,
            ctx.model_id,
            ctx.api_key,
            conversation_id=ctx.conversation_id,
            temperature=COMPLETION_TEMPERATURE,
            reasoning_effort=reasoning_effort,
        )

        async with aclosing(stream) as chunks:
            async for chunk in chunks:
                if ctx.handle.cancelled:
                    log_stage(logger, Stage.CANCELLATION, "Generation aborted during streaming")
                    return True

                progress.content += chunk.content
                progress.reasoning += chunk.reasoning
                progress.annotations.extend(chunk.annotations)
                if chunk.usage is not None:
                    progress.usage = chunk.usage
                if chunk.generation_id:
                    progress.generation_id = chunk.generation_id

                if not progress.content and not progress.reasoning:
                    continue
                if not (chunk.content or chunk.reasoning or chunk.annotations):
                    continue

                await self._store.update_message(
                    progress.message_id,
                    content=progress.content,
                    reasoning=progress.reasoning or None,
                    generation_id=progress.generation_id,
                    annotations=list(progress.annotations) or None,
                    reasoning_effort=ctx.reasoning_effort,
                )

        return ctx.handle.cancelled

    async def _finalize_text(self, ctx: GenerationContext, progress: RunProgress, cancelled: bool) -> None:
        usage = progress.usage
        pricing = await self._pricing(ctx) if usage is not None else None
        cost = calculate_message_cost(usage, pricing, progress.search_cost, progress.scrape_cost)

        fields: dict[str, Any] = {
            "content": progress.content,
            "reasoning": progress.reasoning or None,
            "content_html": render_markdown(progress.content),
            "generation_id": progress.generation_id,
            "annotations": list(progress.annotations) or None,
            "token_count": usage.completion_tokens if usage is not None else None,
            "cost_usd": cost,
        }
        if cancelled:
            fields["error"] = CANCELLED_ERROR_TEXT
        elif not progress.content and not progress.reasoning:
            fields["error"] = EMPTY_RESPONSE_ERROR

        await self._commit(ctx, progress.message_id, cost, fields)
        log_stage(
            logger,
            Stage.FINALIZE,
            "Message finalized",
            content_length=len(progress.content),
            token_count=fields["token_count"],
            cost_usd=cost,
            cancelled=cancelled,
        )

    async def _commit(
        self, ctx: GenerationContext, message_id: str, cost: float | None, fields: dict[str, Any]
    ) -> None:
        """Terminal update; the conversation total only grows when this call finalized the row."""
        finalized = await self._store.finalize_message(message_id, **fields)
        if finalized and cost:
            await self._store.add_conversation_cost(ctx.conversation_id, cost)
        self._registry.release(ctx.conversation_id, ctx.handle)
        await self._clear_generating(ctx)

    async def _pricing(self, ctx: GenerationContext) -> ModelPricing | None:
        if ctx.model is not None:
            return ctx.model.pricing
        try:
            model = await self._catalog.get_model(ctx.model_id)
        except CatalogUnavailableError:
            return None
        return model.pricing if model else None

    async def _format_history(self, history: list[Message]) -> list[dict[str, Any]]:
        """OpenAI-format messages; user images become multimodal content parts."""
        formatted = []
        for message in history:
            if message.role == MessageRole.ASSISTANT and not message.content:
                continue
            if message.role == MessageRole.USER and message.images:
                parts: list[dict[str, Any]] = [{"type": "text", "text": message.content}]
                for image in message.images:
                    url = await resolve_image_url(image, self._file_storage)
                    parts.append({"type": "image_url", "image_url": {"url": url}})
                formatted.append({"role": MessageRole.USER.value, "content": parts})
            else:
                formatted.append({"role": MessageRole(message.role).value, "content": message.content})
        return formatted

    # ------------------------------------------------------------------------
    # Media
    # ------------------------------------------------------------------------

    async def _media_prompt(self, ctx: GenerationContext) -> Message | None:
        if ctx.user_message is not None:
            return ctx.user_message
        history = await self._store.list_messages(ctx.conversation_id)
        return next((m for m in reversed(history) if m.role == MessageRole.USER), None)

    async def _create_placeholder(self, ctx: GenerationContext, progress: RunProgress, content: str) -> None:
        placeholder = await self._store.create_message(
            Message(
                conversation_id=ctx.conversation_id,
                role=MessageRole.ASSISTANT,
                content=content,
                model_id=ctx.model_id,
                provider=Provider.NANOGPT.value,
            )
        )
        progress.message_id = placeholder.id
        progress.content = content

    async def _generate_image(self, ctx: GenerationContext, progress: RunProgress) -> None:
        source = await self._media_prompt(ctx)
        await self._create_placeholder(ctx, progress, IMAGE_PLACEHOLDER)

        with self._tracker.track_stage(Stage.MEDIA_SUBMIT, "Image generation", ctx.conversation_id):
            result = await self._media.generate_image(
                ctx.user_id,
                ctx.model_id,
                source.content if source else None,
                ctx.api_key,
                images=source.images if source else None,
                handle=ctx.handle,
            )

        self._transition(ctx, GenerationState.FINALIZING)
        await self._commit(
            ctx,
            progress.message_id,
            result.cost_usd,
            {
                "content": result.content,
                "content_html": result.content_html,
                "token_count": result.token_count,
                "cost_usd": result.cost_usd,
            },
        )
        self._transition(ctx, GenerationState.COMPLETED)

    async def _generate_video(self, ctx: GenerationContext, progress: RunProgress) -> None:
        source = await self._media_prompt(ctx)
        if source is None:
            raise InvalidInputError(NO_USER_MESSAGE_ERROR, conversation_id=ctx.conversation_id)
        await self._create_placeholder(ctx, progress, VIDEO_PLACEHOLDER)

        with self._tracker.track_stage(Stage.MEDIA_POLL, "Video generation", ctx.conversation_id):
            result = await self._media.generate_video(
                ctx.model_id,
                source.content,
                ctx.api_key,
                images=source.images,
                handle=ctx.handle,
            )

        self._transition(ctx, GenerationState.FINALIZING)
        await self._commit(
            ctx,
            progress.message_id,
            result.cost_usd,
            {
                "content": result.content,
                "content_html": result.content_html,
                "generation_id": result.generation_id,
                "cost_usd": result.cost_usd,
            },
        )
        self._transition(ctx, GenerationState.COMPLETED)
