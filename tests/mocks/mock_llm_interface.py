"""
Mock httpx client for testing the backend adapters without real API calls.
"""
from typing import Any, Dict, List, Optional


class MockProviderResponse:
    """Mock response from an LLM provider API."""

    def __init__(self, content: Any, status_code: int = 200, text: str = ""):
        """Initialize mock response.

        Args:
            content: Decoded JSON body, or an Exception raised by json()
            status_code: HTTP status code
            text: Raw body text
        """
        self.content = content
        self.status_code = status_code
        self.text = text

    def json(self) -> Any:
        """Return JSON response."""
        if isinstance(self.content, Exception):
            raise self.content
        return self.content


class MockHttpxClient:
    """Mock httpx.AsyncClient for testing."""

    def __init__(
        self,
        response_content: Any = None,
        status_code: int = 200,
        error_type: Optional[str] = None
    ):
        """Initialize mock client.

        Args:
            response_content: Content to return in response
            status_code: HTTP status code to return
            error_type: Type of error to simulate (e.g., 'model_not_found', 'timeout')
        """
        self.response_content = response_content
        self.status_code = status_code
        self.error_type = error_type
        self.last_url: Optional[str] = None
        self.last_headers: Optional[Dict[str, str]] = None
        self.last_request_payload: Optional[Dict[str, Any]] = None
        self.requests: List[Dict[str, Any]] = []

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        pass

    async def post(
        self,
        url: str,
        headers: Dict[str, str],
        json: Dict[str, Any]
    ) -> MockProviderResponse:
        """Mock POST request.

        Returns:
            MockProviderResponse with configured content/status
        """
        self.last_url = url
        self.last_headers = headers
        self.last_request_payload = json
        self.requests.append({"url": url, "headers": headers, "json": json})

        if self.error_type == "model_not_found":
            return MockProviderResponse(
                content={
                    "error": {
                        "message": f"The model `{json.get('model')}` does not exist or you do not have access to it.",
                        "type": "invalid_request_error",
                        "param": "model",
                        "code": "model_not_found"
                    }
                },
                status_code=404
            )

        if self.error_type == "rate_limit":
            return MockProviderResponse(
                content={
                    "error": {
                        "message": "Rate limit exceeded. Please try again later.",
                        "type": "rate_limit_error",
                        "param": None,
                        "code": "rate_limit_exceeded"
                    }
                },
                status_code=429
            )

        if self.error_type == "invalid_api_key":
            return MockProviderResponse(
                content={
                    "error": {
                        "message": "Incorrect API key provided.",
                        "type": "invalid_request_error",
                        "param": None,
                        "code": "invalid_api_key"
                    }
                },
                status_code=401
            )

        if self.error_type == "server_error_html":
            return MockProviderResponse(
                content=ValueError("Expecting value"),
                status_code=502,
                text="<html>Bad Gateway</html>"
            )

        if self.error_type == "invalid_json":
            return MockProviderResponse(content=ValueError("Expecting value"), status_code=200, text="not json")

        if self.error_type == "connection_error":
            import httpx
            raise httpx.ConnectError("Failed to establish connection")

        if self.error_type == "timeout":
            import httpx
            raise httpx.TimeoutException("Request timed out")

        if self.response_content is None:
            self.response_content = create_mock_openai_response("Hello! How can I help you today?")

        return MockProviderResponse(
            content=self.response_content,
            status_code=self.status_code
        )


def create_mock_openai_response(message: str = "Hello!", total_tokens: Optional[int] = 42) -> Dict[str, Any]:
    """Create a mock OpenAI chat completions response structure."""
    response: Dict[str, Any] = {
        "choices": [{
            "message": {
                "role": "assistant",
                "content": message
            }
        }]
    }
    if total_tokens is not None:
        response["usage"] = {"total_tokens": total_tokens}
    return response


def create_mock_gemini_response(message: str = "Hello!", total_tokens: Optional[int] = 17) -> Dict[str, Any]:
    """Create a mock Gemini generateContent response structure."""
    response: Dict[str, Any] = {
        "candidates": [{
            "content": {
                "parts": [{"text": message}],
                "role": "model"
            }
        }]
    }
    if total_tokens is not None:
        response["usageMetadata"] = {"totalTokenCount": total_tokens}
    return response


def create_mock_httpx_client(
    message: str = "Hello!",
    provider: str = "openai",
    error_type: Optional[str] = None,
    status_code: int = 200
) -> MockHttpxClient:
    """Factory function to create a MockHttpxClient with preconfigured response.

    Args:
        message: Answer text
        provider: "openai" or "gemini" response shape
        error_type: Type of error to simulate
        status_code: HTTP status code

    Returns:
        Configured MockHttpxClient
    """
    if error_type:
        return MockHttpxClient(error_type=error_type)

    if provider == "gemini":
        response_content = create_mock_gemini_response(message)
    else:
        response_content = create_mock_openai_response(message)

    return MockHttpxClient(
        response_content=response_content,
        status_code=status_code
    )
