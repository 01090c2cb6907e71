#!/usr/bin/env python3
"""
Tests for the model registry and the chain catalogue.
"""
import sys
from pathlib import Path

import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.base.chain_catalogue import ChainCatalogue
from app.base.model_registry import ModelRegistry
from app.base.models import ChainDescriptor, ModelDescriptor


@pytest.mark.unit
class TestModelRegistry:
    """Tests for ModelRegistry lookups and enablement."""

    def setup_method(self):
        self.registry = ModelRegistry()

    def test_default_models(self):
        ids = [m.model_id for m in self.registry.list_models()]
        assert ids == ["openai", "gemini"]
        assert self.registry.get("openai").name == "OpenAI GPT"
        assert "fast-response" in self.registry.get("gemini").capabilities

    def test_unknown_model_is_none(self):
        assert self.registry.get("claude") is None
        assert "claude" not in self.registry

    def test_ordering_by_priority_then_id(self):
        registry = ModelRegistry([
            ModelDescriptor("zeta", "Zeta"),
            ModelDescriptor("beta", "Beta", priority=2),
            ModelDescriptor("alpha", "Alpha", priority=2),
            ModelDescriptor("first", "First", priority=1),
        ])
        assert [m.model_id for m in registry.list_models()] == ["first", "alpha", "beta", "zeta"]

    def test_duplicate_ids_rejected(self):
        with pytest.raises(ValueError):
            ModelRegistry([ModelDescriptor("a", "A"), ModelDescriptor("a", "A again")])

    def test_enablement_filter(self):
        assert self.registry.is_enabled("openai") is True
        assert self.registry.is_enabled("openai", {"openai": False}) is False
        # Missing keys count as disabled once a filter is given
        assert self.registry.is_enabled("gemini", {"openai": True}) is False
        assert [m.model_id for m in self.registry.eligible({"gemini": True})] == ["gemini"]

    def test_registry_disabled_model_never_eligible(self):
        registry = ModelRegistry([ModelDescriptor("off", "Off", enabled=False)])
        assert registry.is_enabled("off", {"off": True}) is False
        assert registry.eligible() == []


@pytest.mark.unit
class TestChainCatalogue:
    """Tests for ChainCatalogue ids, lookups and runnability."""

    def setup_method(self):
        self.registry = ModelRegistry()
        self.catalogue = ChainCatalogue()

    def test_default_chains_in_order(self):
        chains = self.catalogue.list_chains()
        assert [c.chain_id for c in chains] == ["chain_0", "chain_1"]
        assert chains[0].models == ("openai", "gemini")
        assert chains[1].models == ("gemini", "openai")
        assert chains[0].description == "Deep analysis followed by practical insights"

    def test_ids_are_stable_across_calls(self):
        assert self.catalogue.chain_ids() == self.catalogue.chain_ids()
        assert self.catalogue.resolve("chain_1") is self.catalogue.list_chains()[1]

    def test_explicit_chain_id(self):
        catalogue = ChainCatalogue([{"chain_id": "deep", "models": ["openai"], "name": "Deep"}])
        assert catalogue.resolve("deep").name == "Deep"
        assert catalogue.resolve("chain_0") is None

    def test_empty_chain_rejected(self):
        with pytest.raises(ValueError):
            ChainCatalogue([{"models": [], "name": "Empty"}])

    def test_duplicate_chain_id_rejected(self):
        with pytest.raises(ValueError):
            ChainCatalogue([
                {"chain_id": "x", "models": ["openai"], "name": "X"},
                {"chain_id": "x", "models": ["gemini"], "name": "X2"},
            ])

    def test_runnable_requires_every_model(self):
        chain = self.catalogue.resolve("chain_0")
        assert self.catalogue.is_runnable(chain, self.registry)
        assert not self.catalogue.is_runnable(chain, self.registry, {"openai": True})
        assert self.catalogue.unavailable_models(chain, self.registry, {"openai": True}) == ["gemini"]
        assert self.catalogue.runnable_chains(self.registry, {"gemini": True}) == []

    def test_chain_with_unknown_model_not_runnable(self):
        chain = ChainDescriptor("c", ("openai", "mystery"), "C")
        assert ChainCatalogue.unavailable_models(chain, self.registry) == ["mystery"]
