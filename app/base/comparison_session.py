"""
Comparison session management: one question, its answers, and the user's pick.
"""
import logging
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

from app.base.chain_catalogue import ChainCatalogue
from app.base.errors import InvalidSelection
from app.base.model_registry import ModelRegistry
from app.base.models import (
    ChainDescriptor,
    ChainRecord,
    ChainSource,
    ChatMode,
    ModelResponse,
    ModelSource,
    ResponseSource,
    TrainingDataEntry,
    parse_source,
)
from app.base.orchestrator import OrchestrationResult

logger = logging.getLogger(__name__)

class SessionState(Enum):
    """Lifecycle of a comparison session."""
    OPEN = "open"
    POPULATED = "populated"
    SELECTED = "selected"
    PERSISTED = "persisted"

@dataclass(frozen=True)
class SelectionOption:
    """Something the user may pick as the best answer."""
    source: ResponseSource
    name: str
    models: tuple = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.source.kind,
            "id": self.source.key,
            "name": self.name,
            "models": list(self.models),
        }

def get_available_selection_options(
    mode: ChatMode,
    enabled_models: Mapping[str, bool],
    registry: ModelRegistry,
    catalogue: ChainCatalogue,
) -> List[SelectionOption]:
    """List the options a user can choose between for a mode.

    Args:
        mode: Chat mode of the session
        enabled_models: Per-model enablement owned by the UI
        registry: Model registry
        catalogue: Chain catalogue

    Returns:
        Model options (parallel/universal) followed by runnable chain options (chain/universal)
    """
    mode = ChatMode(mode)
    options: List[SelectionOption] = []
    if mode in (ChatMode.PARALLEL, ChatMode.UNIVERSAL):
        for model in registry.eligible(enabled_models):
            options.append(SelectionOption(source=ModelSource(model.model_id), name=model.name))
    if mode in (ChatMode.CHAIN, ChatMode.UNIVERSAL):
        for chain in catalogue.runnable_chains(registry, enabled_models):
            options.append(SelectionOption(source=ChainSource(chain.chain_id), name=chain.name, models=chain.models))
    return options

class ComparisonSession:
    """Transient record of one question until the user picks an answer."""

    def __init__(
        self,
        session_id: str,
        timestamp: int,
        question: str,
        wallet_data: Optional[Dict[str, Any]],
        chat_mode: ChatMode,
        selected_chain: Optional[ChainDescriptor] = None,
    ):
        self.id = session_id
        self.timestamp = timestamp
        self.question = question
        self.wallet_data = wallet_data
        self.chat_mode = ChatMode(chat_mode)
        self.selected_chain = selected_chain
        self.responses: Dict[str, ModelResponse] = {}
        self.chain_responses: Optional[Dict[str, ChainRecord]] = None
        self.selected_option: Optional[ResponseSource] = None
        self.state = SessionState.OPEN

    @classmethod
    def create(
        cls,
        question: str,
        wallet_data: Optional[Dict[str, Any]],
        chat_mode: ChatMode,
        clock=time.time,
    ) -> "ComparisonSession":
        """Open a new session for a submitted question."""
        return cls(
            session_id=uuid.uuid4().hex,
            timestamp=int(clock() * 1000),
            question=question,
            wallet_data=wallet_data,
            chat_mode=chat_mode,
        )

    def apply_result(self, result: OrchestrationResult) -> None:
        """Merge the engine's answers into the session.

        Successful parallel answers go into responses. Every chain result goes
        into chain_responses, including failed ones, so a failed chain still
        shows up in the comparison.
        """
        if self.state not in (SessionState.OPEN, SessionState.POPULATED):
            raise InvalidSelection(f"Session {self.id} is {self.state.value}; results can no longer be merged")

        for message in result.parallel:
            if message.response is not None and not message.is_error:
                self.responses[message.response.model_id] = message.response

        if self.chat_mode != ChatMode.PARALLEL and result.chains:
            if self.chain_responses is None:
                self.chain_responses = {}
            for chained in result.chains:
                self.chain_responses[chained.chain_id] = ChainRecord(
                    chain=chained.chain,
                    responses=dict(chained.execution.responses),
                    execution=chained.execution,
                )
            if self.chat_mode == ChatMode.CHAIN and result.chain_override is not None and len(result.chains) == 1:
                self.selected_chain = result.chains[0].chain

        self.state = SessionState.POPULATED
        logger.debug(
            f"Session {self.id} populated with {len(self.responses)} responses "
            f"and {len(self.chain_responses or {})} chains"
        )

    @property
    def has_results(self) -> bool:
        return bool(self.responses) or bool(self.chain_responses)

    def select(self, option: Union[ResponseSource, str]) -> ResponseSource:
        """Record the user's preferred answer.

        Args:
            option: A ResponseSource or its persisted key

        Returns:
            The recorded source

        Raises:
            InvalidSelection: If the session is persisted, empty, or the option is not present
        """
        if self.state == SessionState.PERSISTED:
            raise InvalidSelection(f"Session {self.id} has already been saved")
        if not self.has_results:
            raise InvalidSelection(f"Session {self.id} has no responses to choose from")

        chain_ids = list((self.chain_responses or {}).keys())
        source = parse_source(option, chain_ids) if isinstance(option, str) else option

        if isinstance(source, ChainSource):
            present = source.chain_id in (self.chain_responses or {})
        else:
            present = source.model_id in self.responses
        if not present:
            raise InvalidSelection(f"Option {source.key} is not among the responses of session {self.id}")

        self.selected_option = source
        self.state = SessionState.SELECTED
        logger.info(f"Session {self.id}: {source.key} selected")
        return source

    def to_entry(self) -> TrainingDataEntry:
        """Freeze the session into its persisted form.

        Raises:
            InvalidSelection: If nothing has been selected yet or the session is already saved
        """
        if self.state == SessionState.PERSISTED:
            raise InvalidSelection(f"Session {self.id} has already been saved")
        if self.selected_option is None:
            raise InvalidSelection(f"Session {self.id} cannot be saved without a selection")
        return TrainingDataEntry(
            id=self.id,
            timestamp=self.timestamp,
            question=self.question,
            wallet_data=self.wallet_data,
            chat_mode=self.chat_mode,
            responses=dict(self.responses),
            selected_option=self.selected_option.key,
            selected_chain=self.selected_chain,
            chain_responses=dict(self.chain_responses) if self.chain_responses is not None else None,
        )

    def mark_persisted(self) -> None:
        self.state = SessionState.PERSISTED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "question": self.question,
            "chat_mode": self.chat_mode.value,
            "state": self.state.value,
            "selected_chain": self.selected_chain.to_dict() if self.selected_chain else None,
            "responses": {k: v.to_dict() for k, v in self.responses.items()},
            "chain_responses": (
                {k: v.to_dict() for k, v in self.chain_responses.items()}
                if self.chain_responses is not None else None
            ),
            "selected_option": self.selected_option.key if self.selected_option else None,
        }
