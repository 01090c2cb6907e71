"""
Mock objects for testing SuiSage.
"""
from tests.mocks.mock_llm_interface import (
    MockHttpxClient,
    MockProviderResponse,
    create_mock_openai_response,
    create_mock_gemini_response,
    create_mock_httpx_client,
)
from tests.mocks.mock_invoker import FakeInvoker, StepClock, failure
from tests.mocks.mock_kv_store import FailingKeyValueStore

__all__ = [
    'MockHttpxClient',
    'MockProviderResponse',
    'create_mock_openai_response',
    'create_mock_gemini_response',
    'create_mock_httpx_client',
    'FakeInvoker',
    'StepClock',
    'failure',
    'FailingKeyValueStore',
]
