"""
Orchestration engine for multi-model questions.

Runs a question against several backends independently (parallel mode),
through ordered model chains where each answer feeds the next prompt (chain
mode), or both at once (universal mode). Backend failures come back as
in-band error messages tagged with their source; nothing a backend does
escapes execute().
"""
import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol

from app.base.chain_catalogue import ChainCatalogue
from app.base.errors import (
    BackendError,
    BackendRequestFailed,
    BackendUnavailable,
    ChainExecutionFailed,
    NoProvidersEnabled,
)
from app.base.llm_interface import create_chain_prompt
from app.base.model_registry import ModelRegistry
from app.base.models import (
    ChainDescriptor,
    ChainedResponse,
    ChainExecutionResult,
    ChainSource,
    ChainStep,
    ChatMessage,
    ChatMode,
    ModelResponse,
    ModelSource,
)
from utils import config

logger = logging.getLogger(__name__)

NO_PROVIDERS_MESSAGE = "No AI providers are available. Enable at least one model in settings."


class BackendInvoker(Protocol):
    """Anything that can ask one backend one question."""

    async def invoke(
        self,
        backend_id: str,
        prompt: str,
        wallet_data: Optional[Dict[str, Any]],
    ) -> ModelResponse:
        ...


@dataclass
class OrchestrationResult:
    """Mode-shaped result of one execute() call."""
    mode: ChatMode
    parallel: List[ChatMessage] = field(default_factory=list)
    chains: List[ChainedResponse] = field(default_factory=list)
    no_providers: bool = False
    message: Optional[str] = None
    chain_override: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "parallel": [m.to_dict() for m in self.parallel],
            "chains": [c.to_dict() for c in self.chains],
            "no_providers": self.no_providers,
            "message": self.message,
        }


class OrchestrationEngine:
    """Drives backend calls for parallel, chain and universal modes."""

    def __init__(
        self,
        registry: ModelRegistry,
        catalogue: ChainCatalogue,
        invoker: BackendInvoker,
        clock: Callable[[], float] = time.time,
        call_timeout: Optional[float] = config.BACKEND_TIMEOUT,
    ):
        """Initialize the engine.

        Args:
            registry: Models that may be invoked
            catalogue: Chains run in chain and universal modes
            invoker: Backend invoker (LLMInterface or a test double)
            clock: Time source in seconds, used for timestamps and durations
            call_timeout: Deadline for each backend call in seconds, None disables it
        """
        self.registry = registry
        self.catalogue = catalogue
        self.invoker = invoker
        self.clock = clock
        self.call_timeout = call_timeout

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    def _preflight(self, enabled_models: Optional[Mapping[str, bool]]) -> List[str]:
        """Return the eligible model ids, or raise before anything is invoked."""
        eligible = [m.model_id for m in self.registry.eligible(enabled_models)]
        if not eligible:
            raise NoProvidersEnabled(NO_PROVIDERS_MESSAGE)
        return eligible

    async def execute(
        self,
        question: str,
        wallet_data: Optional[Dict[str, Any]],
        mode: ChatMode,
        enabled_models: Optional[Mapping[str, bool]] = None,
        chain_override: Optional[str] = None,
    ) -> OrchestrationResult:
        """Answer a question in the requested mode.

        Args:
            question: User question, sent verbatim to parallel models and chain step 0
            wallet_data: Wallet snapshot or None
            mode: parallel, chain or universal
            enabled_models: Per-model enablement owned by the UI; None enables all
            chain_override: In chain mode, run only this chain instead of all of them

        Returns:
            OrchestrationResult; no_providers is set when nothing could be invoked
        """
        mode = ChatMode(mode)
        try:
            eligible = self._preflight(enabled_models)
        except NoProvidersEnabled as e:
            logger.warning(f"No providers enabled for {mode.value} request")
            return OrchestrationResult(mode=mode, no_providers=True, message=str(e))

        logger.info(f"Executing {mode.value} request with models {eligible}")

        if mode == ChatMode.PARALLEL:
            parallel = await self.run_parallel(question, wallet_data, eligible)
            return OrchestrationResult(mode=mode, parallel=parallel)

        if mode == ChatMode.CHAIN:
            if chain_override is not None:
                chains = [await self.run_single_chain(question, wallet_data, chain_override, enabled_models)]
            else:
                chains = await self.run_all_chains(question, wallet_data, enabled_models)
            return OrchestrationResult(mode=mode, chains=chains, chain_override=chain_override)

        parallel, chains = await asyncio.gather(
            self.run_parallel(question, wallet_data, eligible),
            self.run_all_chains(question, wallet_data, enabled_models),
        )
        return OrchestrationResult(mode=mode, parallel=parallel, chains=chains)

    async def _invoke(self, model_id: str, prompt: str, wallet_data: Optional[Dict[str, Any]]) -> ModelResponse:
        """One backend call with the per-call deadline applied."""
        if self.registry.get(model_id) is None:
            raise BackendUnavailable(model_id, f"Model {model_id} is not in the registry")
        try:
            if self.call_timeout is None:
                response = await self.invoker.invoke(model_id, prompt, wallet_data)
            else:
                response = await asyncio.wait_for(
                    self.invoker.invoke(model_id, prompt, wallet_data), timeout=self.call_timeout
                )
        except asyncio.TimeoutError as e:
            raise BackendRequestFailed(model_id, f"{model_id} did not answer within {self.call_timeout}s") from e
        if response.model_id != model_id:
            raise BackendRequestFailed(
                model_id, f"Invoker answered for {response.model_id} instead of {model_id}"
            )
        return response

    # ========== Parallel mode ==========

    async def run_parallel(
        self,
        question: str,
        wallet_data: Optional[Dict[str, Any]],
        model_ids: List[str],
    ) -> List[ChatMessage]:
        """Ask every model independently; one message per model, success or error."""
        results = await asyncio.gather(
            *(self._ask_model(model_id, question, wallet_data) for model_id in model_ids)
        )
        logger.info(
            f"Parallel run finished: {len([m for m in results if not m.is_error])}/{len(results)} succeeded"
        )
        return list(results)

    async def _ask_model(
        self,
        model_id: str,
        question: str,
        wallet_data: Optional[Dict[str, Any]],
    ) -> ChatMessage:
        source = ModelSource(model_id)
        try:
            response = await self._invoke(model_id, question, wallet_data)
        except BackendError as e:
            logger.error(f"Error from {model_id}: {str(e)}")
            return self._error_message(source, f"{self._model_name(model_id)} encountered an error: {str(e)}")
        except Exception as e:
            logger.exception(f"Unexpected error from {model_id}")
            return self._error_message(source, f"{self._model_name(model_id)} encountered an error: {str(e)}")

        return ChatMessage(
            id=f"{model_id}-{uuid.uuid4().hex[:8]}",
            text=response.content,
            source=source,
            timestamp=response.timestamp,
            response=response,
        )

    # ========== Chain mode ==========

    async def execute_chain(
        self,
        question: str,
        wallet_data: Optional[Dict[str, Any]],
        chain: ChainDescriptor,
    ) -> ChainExecutionResult:
        """Run one chain step by step.

        Raises:
            ChainExecutionFailed: On the first failing step; no partial result is returned
        """
        started = self.clock()
        steps: List[ChainStep] = []
        responses: Dict[str, ModelResponse] = {}
        last_response = ""

        for step_index, model_id in enumerate(chain.models):
            enhanced_prompt: Optional[str] = None
            prompt = question
            if step_index > 0:
                enhanced_prompt = create_chain_prompt(question, last_response, self._model_name(model_id))
                prompt = enhanced_prompt

            step_started = self.clock()
            try:
                response = await self._invoke(model_id, prompt, wallet_data)
            except Exception as e:
                logger.error(f"Chain {chain.chain_id} failed at step {step_index + 1} ({model_id}): {str(e)}")
                raise ChainExecutionFailed(chain.chain_id, step_index, model_id, e) from e

            response = response.with_metadata(processing_time=int((self.clock() - step_started) * 1000))
            steps.append(ChainStep(
                step_index=step_index,
                model_id=model_id,
                prompt=prompt,
                response=response,
                enhanced_prompt=enhanced_prompt,
            ))
            responses[model_id] = response
            last_response = response.content
            logger.debug(f"Chain {chain.chain_id} step {step_index + 1} completed")

        total = int((self.clock() - started) * 1000)
        logger.info(f"Chain {chain.chain_id} completed in {total}ms with {len(steps)} steps")
        return ChainExecutionResult(
            steps=tuple(steps),
            final_model_id=chain.models[-1],
            total_processing_time=total,
            responses=responses,
        )

    async def run_chain(
        self,
        question: str,
        wallet_data: Optional[Dict[str, Any]],
        chain: ChainDescriptor,
        enabled_models: Optional[Mapping[str, bool]] = None,
    ) -> ChainedResponse:
        """Run one chain and turn any failure into an error-shaped result."""
        unavailable = self.catalogue.unavailable_models(chain, self.registry, enabled_models)
        if unavailable:
            return self._failed_chain(
                chain, f"Chain \"{chain.name}\" unavailable: {', '.join(unavailable)} not enabled"
            )

        try:
            execution = await self.execute_chain(question, wallet_data, chain)
        except ChainExecutionFailed as e:
            return self._failed_chain(chain, f"Chain \"{chain.name}\" failed: {str(e)}")
        except Exception as e:
            logger.exception(f"Unexpected error in chain {chain.chain_id}")
            return self._failed_chain(chain, f"Chain \"{chain.name}\" failed: {str(e)}")

        final_response = execution.responses[execution.final_model_id]
        return ChainedResponse(
            chain=chain,
            final_message=ChatMessage(
                id=f"{chain.chain_id}-{uuid.uuid4().hex[:8]}",
                text=final_response.content,
                source=ChainSource(chain.chain_id),
                timestamp=self._now_ms(),
                response=final_response,
            ),
            execution=execution,
        )

    async def run_all_chains(
        self,
        question: str,
        wallet_data: Optional[Dict[str, Any]],
        enabled_models: Optional[Mapping[str, bool]] = None,
    ) -> List[ChainedResponse]:
        """Run every catalogued chain concurrently; one result per chain, in catalogue order."""
        chains = self.catalogue.list_chains()
        results = await asyncio.gather(
            *(self.run_chain(question, wallet_data, chain, enabled_models) for chain in chains)
        )
        logger.info(
            f"All chains finished: {len([r for r in results if r.succeeded])}/{len(results)} succeeded"
        )
        return list(results)

    async def run_single_chain(
        self,
        question: str,
        wallet_data: Optional[Dict[str, Any]],
        chain_id: str,
        enabled_models: Optional[Mapping[str, bool]] = None,
    ) -> ChainedResponse:
        chain = self.catalogue.resolve(chain_id)
        if chain is None:
            placeholder = ChainDescriptor(chain_id=chain_id, models=("unknown",), name=chain_id)
            return self._failed_chain(placeholder, f"Chain {chain_id} not found")
        return await self.run_chain(question, wallet_data, chain, enabled_models)

    # ========== Helpers ==========

    def _model_name(self, model_id: str) -> str:
        model = self.registry.get(model_id)
        return model.name if model else model_id

    def _error_message(self, source: Any, text: str) -> ChatMessage:
        return ChatMessage(
            id=f"{source.key}-error-{uuid.uuid4().hex[:8]}",
            text=text,
            source=source,
            timestamp=self._now_ms(),
            is_error=True,
        )

    def _failed_chain(self, chain: ChainDescriptor, text: str) -> ChainedResponse:
        return ChainedResponse(
            chain=chain,
            final_message=self._error_message(ChainSource(chain.chain_id), text),
            execution=ChainExecutionResult.failed(chain.models[-1]),
            error=text,
        )
