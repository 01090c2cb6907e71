"""
Multi-model AI orchestration for Sui wallet questions.
"""
from .base import ChatMode, ModelRegistry, ChainCatalogue, LLMInterface, OrchestrationEngine

__all__ = ['ChatMode', 'ModelRegistry', 'ChainCatalogue', 'LLMInterface', 'OrchestrationEngine']
