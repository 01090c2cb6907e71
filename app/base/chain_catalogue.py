"""
Chain catalogue: ordered list of model chains offered for comparison.
"""
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from app.base.model_registry import ModelRegistry
from app.base.models import ChainDescriptor

logger = logging.getLogger(__name__)

DEFAULT_CHAIN_DEFINITIONS: List[Dict[str, Any]] = [
    {
        "models": ["openai", "gemini"],
        "name": "OpenAI → Gemini",
        "description": "Deep analysis followed by practical insights",
    },
    {
        "models": ["gemini", "openai"],
        "name": "Gemini → OpenAI",
        "description": "Quick overview followed by detailed analysis",
    },
]

class ChainCatalogue:
    """Holds chains in display order, each with an id fixed at construction."""

    def __init__(self, definitions: Optional[Iterable[Dict[str, Any]]] = None):
        """Initialize the catalogue.

        Args:
            definitions: Dicts with "models", "name", optional "description"
                and optional "chain_id". Chains without an explicit id are
                named chain_<position> in definition order.

        Raises:
            ValueError: On an empty model list or a duplicate chain id
        """
        self._chains: List[ChainDescriptor] = []
        self._by_id: Dict[str, ChainDescriptor] = {}
        for index, definition in enumerate(DEFAULT_CHAIN_DEFINITIONS if definitions is None else definitions):
            chain = ChainDescriptor(
                chain_id=definition.get("chain_id") or f"chain_{index}",
                models=tuple(definition["models"]),
                name=definition["name"],
                description=definition.get("description"),
            )
            if chain.chain_id in self._by_id:
                raise ValueError(f"Duplicate chain id in catalogue: {chain.chain_id}")
            self._chains.append(chain)
            self._by_id[chain.chain_id] = chain
        logger.debug(f"ChainCatalogue initialized with {len(self._chains)} chains")

    def list_chains(self) -> List[ChainDescriptor]:
        """Get all chains in display order."""
        return list(self._chains)

    def resolve(self, chain_id: str) -> Optional[ChainDescriptor]:
        """Look up a chain by its id."""
        return self._by_id.get(chain_id)

    def chain_ids(self) -> List[str]:
        return [chain.chain_id for chain in self._chains]

    @staticmethod
    def unavailable_models(
        chain: ChainDescriptor,
        registry: ModelRegistry,
        enabled_filter: Optional[Mapping[str, bool]] = None,
    ) -> List[str]:
        """List the models that keep a chain from running for this request."""
        return [m for m in chain.models if not registry.is_enabled(m, enabled_filter)]

    @classmethod
    def is_runnable(
        cls,
        chain: ChainDescriptor,
        registry: ModelRegistry,
        enabled_filter: Optional[Mapping[str, bool]] = None,
    ) -> bool:
        """Check that every model of the chain resolves and is enabled right now."""
        return not cls.unavailable_models(chain, registry, enabled_filter)

    def runnable_chains(
        self,
        registry: ModelRegistry,
        enabled_filter: Optional[Mapping[str, bool]] = None,
    ) -> Sequence[ChainDescriptor]:
        return [c for c in self._chains if self.is_runnable(c, registry, enabled_filter)]

    def __len__(self) -> int:
        return len(self._chains)
