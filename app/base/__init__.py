"""
Core services for multi-model AI orchestration.
"""
from .models import ChatMode, ModelDescriptor, ChainDescriptor, ModelSource, ChainSource
from .model_registry import ModelRegistry
from .chain_catalogue import ChainCatalogue
from .llm_interface import LLMInterface, build_system_prompt, create_chain_prompt
from .orchestrator import OrchestrationEngine, OrchestrationResult
from .comparison_session import ComparisonSession, SessionState, get_available_selection_options

__all__ = [
    'ChatMode',
    'ModelDescriptor',
    'ChainDescriptor',
    'ModelSource',
    'ChainSource',
    'ModelRegistry',
    'ChainCatalogue',
    'LLMInterface',
    'build_system_prompt',
    'create_chain_prompt',
    'OrchestrationEngine',
    'OrchestrationResult',
    'ComparisonSession',
    'SessionState',
    'get_available_selection_options'
]
