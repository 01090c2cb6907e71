"""
Model registry: static catalogue of the LLM backends the app can talk to.
"""
import logging
from typing import Dict, Iterable, List, Mapping, Optional

from app.base.models import ModelDescriptor

logger = logging.getLogger(__name__)

DEFAULT_MODELS: List[ModelDescriptor] = [
    ModelDescriptor(
        model_id="openai",
        name="OpenAI GPT",
        enabled=True,
        capabilities=frozenset({"chat", "analysis", "voice-compatible"}),
        priority=1,
    ),
    ModelDescriptor(
        model_id="gemini",
        name="Google Gemini",
        enabled=True,
        capabilities=frozenset({"chat", "analysis", "fast-response"}),
        priority=2,
    ),
]

class ModelRegistry:
    """Read-only lookup of model descriptors by id."""

    def __init__(self, models: Optional[Iterable[ModelDescriptor]] = None):
        """Initialize the registry.

        Args:
            models: Descriptors to register, defaults to DEFAULT_MODELS

        Raises:
            ValueError: If two descriptors share an id
        """
        self._models: Dict[str, ModelDescriptor] = {}
        for model in (DEFAULT_MODELS if models is None else models):
            if model.model_id in self._models:
                raise ValueError(f"Duplicate model id in registry: {model.model_id}")
            self._models[model.model_id] = model
        logger.debug(f"ModelRegistry initialized with {len(self._models)} models")

    def list_models(self) -> List[ModelDescriptor]:
        """Get all registered models, ordered by priority then id."""
        return sorted(
            self._models.values(),
            key=lambda m: (m.priority if m.priority is not None else float("inf"), m.model_id),
        )

    def get(self, model_id: str) -> Optional[ModelDescriptor]:
        """Look up a model. None means the model is unavailable."""
        return self._models.get(model_id)

    def is_enabled(self, model_id: str, enabled_filter: Optional[Mapping[str, bool]] = None) -> bool:
        """Check registry enablement and the caller's per-request enablement.

        Args:
            model_id: Model to check
            enabled_filter: Per-model flags owned by the UI; None enables all

        Returns:
            True when the model exists, is registry-enabled and filter-enabled
        """
        model = self._models.get(model_id)
        if model is None or not model.enabled:
            return False
        if enabled_filter is None:
            return True
        return bool(enabled_filter.get(model_id, False))

    def eligible(self, enabled_filter: Optional[Mapping[str, bool]] = None) -> List[ModelDescriptor]:
        """Get the models a request may invoke."""
        return [m for m in self.list_models() if self.is_enabled(m.model_id, enabled_filter)]

    def __contains__(self, model_id: object) -> bool:
        return model_id in self._models

    def __len__(self) -> int:
        return len(self._models)
