"""
Data records shared by the orchestration core.

Everything here is a plain data record: the engine produces them, the
comparison session collects them and the training data store persists
their dict form (snake_case keys, timestamps in epoch milliseconds).
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, FrozenSet, Iterable, List, Optional, Tuple, TypedDict, Union


class ChatMode(Enum):
    """How a question is dispatched to the backends."""
    PARALLEL = "parallel"
    CHAIN = "chain"
    UNIVERSAL = "universal"


class Asset(TypedDict):
    """One coin balance held by the wallet."""
    coin_type: str
    balance: float
    symbol: str


class Transaction(TypedDict):
    """One recent wallet transaction."""
    digest: str
    timestamp: int
    sender: str
    gas_used: float
    success: bool
    kind: str


class WalletData(TypedDict):
    """Opaque wallet snapshot supplied by the wallet data source."""
    address: str
    balance: float
    assets: List[Asset]
    transactions: List[Transaction]


def project_wallet_context(wallet_data: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Reduce a wallet snapshot to {balance, assets, transactions} counts."""
    if wallet_data is None:
        return None
    return {
        "balance": wallet_data.get("balance", 0),
        "assets": len(wallet_data.get("assets") or []),
        "transactions": len(wallet_data.get("transactions") or []),
    }


@dataclass(frozen=True)
class ModelDescriptor:
    """A backend model known to the registry."""
    model_id: str
    name: str
    enabled: bool = True
    capabilities: FrozenSet[str] = frozenset()
    priority: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model_id": self.model_id,
            "name": self.name,
            "enabled": self.enabled,
            "capabilities": sorted(self.capabilities),
            "priority": self.priority,
        }


@dataclass(frozen=True)
class ChainDescriptor:
    """An ordered sequence of models whose outputs feed each other."""
    chain_id: str
    models: Tuple[str, ...]
    name: str
    description: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "models", tuple(self.models))
        if not self.models:
            raise ValueError(f"Chain {self.chain_id} must contain at least one model")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chain_id": self.chain_id,
            "models": list(self.models),
            "name": self.name,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChainDescriptor":
        return cls(
            chain_id=data["chain_id"],
            models=tuple(data["models"]),
            name=data["name"],
            description=data.get("description"),
        )


@dataclass(frozen=True)
class ModelSource:
    """A response produced by a single model."""
    model_id: str
    kind: ClassVar[str] = "model"

    @property
    def key(self) -> str:
        return self.model_id


@dataclass(frozen=True)
class ChainSource:
    """A response produced by a whole chain."""
    chain_id: str
    kind: ClassVar[str] = "chain"

    @property
    def key(self) -> str:
        return self.chain_id


ResponseSource = Union[ModelSource, ChainSource]


def parse_source(key: str, chain_ids: Iterable[str]) -> ResponseSource:
    """Turn a persisted selection key back into a source.

    Args:
        key: Persisted key (a model id or a chain id)
        chain_ids: Chain ids known in the current context

    Returns:
        ChainSource when the key names a known chain, ModelSource otherwise
    """
    if key in set(chain_ids):
        return ChainSource(key)
    return ModelSource(key)


@dataclass(frozen=True)
class ResponseMetadata:
    """Optional measurements attached to a model response."""
    tokens: Optional[int] = None
    processing_time: Optional[int] = None  # milliseconds
    confidence: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in (
            ("tokens", self.tokens),
            ("processing_time", self.processing_time),
            ("confidence", self.confidence),
        ) if v is not None}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ResponseMetadata":
        data = data or {}
        return cls(
            tokens=data.get("tokens"),
            processing_time=data.get("processing_time"),
            confidence=data.get("confidence"),
        )


@dataclass(frozen=True)
class ModelResponse:
    """The answer of one backend call."""
    model_id: str
    content: str
    timestamp: int
    metadata: ResponseMetadata = field(default_factory=ResponseMetadata)

    def with_metadata(self, **changes: Any) -> "ModelResponse":
        """Return a copy whose metadata has the given fields replaced."""
        current = self.metadata.to_dict()
        current.update(changes)
        return ModelResponse(
            model_id=self.model_id,
            content=self.content,
            timestamp=self.timestamp,
            metadata=ResponseMetadata.from_dict(current),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model_id": self.model_id,
            "content": self.content,
            "timestamp": self.timestamp,
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ModelResponse":
        return cls(
            model_id=data["model_id"],
            content=data["content"],
            timestamp=int(data["timestamp"]),
            metadata=ResponseMetadata.from_dict(data.get("metadata")),
        )


@dataclass(frozen=True)
class ChainStep:
    """One hop of a chain execution."""
    step_index: int
    model_id: str
    prompt: str
    response: ModelResponse
    enhanced_prompt: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_index": self.step_index,
            "model_id": self.model_id,
            "prompt": self.prompt,
            "response": self.response.to_dict(),
            "enhanced_prompt": self.enhanced_prompt,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChainStep":
        return cls(
            step_index=int(data["step_index"]),
            model_id=data["model_id"],
            prompt=data["prompt"],
            response=ModelResponse.from_dict(data["response"]),
            enhanced_prompt=data.get("enhanced_prompt"),
        )


@dataclass(frozen=True)
class ChainExecutionResult:
    """All steps of one chain run."""
    steps: Tuple[ChainStep, ...]
    final_model_id: str
    total_processing_time: int  # milliseconds
    responses: Dict[str, ModelResponse] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "steps", tuple(self.steps))
        for expected, step in enumerate(self.steps):
            if step.step_index != expected:
                raise ValueError(
                    f"Chain step indices must be contiguous from 0, got {step.step_index} at position {expected}"
                )

    @classmethod
    def failed(cls, final_model_id: str) -> "ChainExecutionResult":
        """Error-shaped result: no steps, no processing time."""
        return cls(steps=(), final_model_id=final_model_id, total_processing_time=0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "steps": [step.to_dict() for step in self.steps],
            "final_model_id": self.final_model_id,
            "total_processing_time": self.total_processing_time,
            "responses": {k: v.to_dict() for k, v in self.responses.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChainExecutionResult":
        return cls(
            steps=tuple(ChainStep.from_dict(s) for s in data.get("steps", [])),
            final_model_id=data["final_model_id"],
            total_processing_time=int(data.get("total_processing_time", 0)),
            responses={k: ModelResponse.from_dict(v) for k, v in (data.get("responses") or {}).items()},
        )


@dataclass(frozen=True)
class ChatMessage:
    """What the UI renders for one answer, successful or not."""
    id: str
    text: str
    source: ResponseSource
    timestamp: int
    is_error: bool = False
    response: Optional[ModelResponse] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "source": {"kind": self.source.kind, "id": self.source.key},
            "timestamp": self.timestamp,
            "is_error": self.is_error,
        }


@dataclass(frozen=True)
class ChainedResponse:
    """Outcome of one chain in chain or universal mode."""
    chain: ChainDescriptor
    final_message: ChatMessage
    execution: ChainExecutionResult
    error: Optional[str] = None

    @property
    def chain_id(self) -> str:
        return self.chain.chain_id

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chain": self.chain.to_dict(),
            "final_message": self.final_message.to_dict(),
            "execution": self.execution.to_dict(),
            "error": self.error,
        }


@dataclass(frozen=True)
class ChainRecord:
    """Per-chain data kept on a session and in a training entry."""
    chain: ChainDescriptor
    responses: Dict[str, ModelResponse]
    execution: ChainExecutionResult

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chain": self.chain.to_dict(),
            "responses": {k: v.to_dict() for k, v in self.responses.items()},
            "execution": self.execution.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChainRecord":
        return cls(
            chain=ChainDescriptor.from_dict(data["chain"]),
            responses={k: ModelResponse.from_dict(v) for k, v in (data.get("responses") or {}).items()},
            execution=ChainExecutionResult.from_dict(data["execution"]),
        )


@dataclass(frozen=True)
class TrainingDataEntry:
    """Persisted projection of a finalized comparison session."""
    id: str
    timestamp: int
    question: str
    wallet_data: Optional[Dict[str, Any]]
    chat_mode: ChatMode
    responses: Dict[str, ModelResponse]
    selected_option: Optional[str]
    selected_chain: Optional[ChainDescriptor] = None
    chain_responses: Optional[Dict[str, ChainRecord]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "question": self.question,
            "wallet_data": self.wallet_data,
            "chat_mode": self.chat_mode.value,
            "selected_chain": self.selected_chain.to_dict() if self.selected_chain else None,
            "responses": {k: v.to_dict() for k, v in self.responses.items()},
            "chain_responses": (
                {k: v.to_dict() for k, v in self.chain_responses.items()}
                if self.chain_responses is not None else None
            ),
            "selected_option": self.selected_option,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrainingDataEntry":
        """Rebuild an entry from its persisted form.

        Raises:
            KeyError, TypeError, ValueError: When the record is malformed
        """
        if not isinstance(data, dict):
            raise TypeError(f"Training entry must be an object, got {type(data).__name__}")
        chain_responses = data.get("chain_responses")
        selected_chain = data.get("selected_chain")
        return cls(
            id=str(data["id"]),
            timestamp=int(data["timestamp"]),
            question=str(data["question"]),
            wallet_data=data.get("wallet_data"),
            chat_mode=ChatMode(data["chat_mode"]),
            responses={k: ModelResponse.from_dict(v) for k, v in (data.get("responses") or {}).items()},
            selected_option=data.get("selected_option"),
            selected_chain=ChainDescriptor.from_dict(selected_chain) if selected_chain else None,
            chain_responses=(
                {k: ChainRecord.from_dict(v) for k, v in chain_responses.items()}
                if chain_responses is not None else None
            ),
        )
