"""
LLM interface for asking OpenAI and Gemini about a user's Sui wallet.
Handles prompt composition, the per-provider HTTP round-trip and response parsing.
"""
import logging
import json
import os
import re
import time
from typing import Any, Callable, Dict, List, Optional

import httpx

from app.base.errors import BackendRequestFailed, BackendResponseMalformed, BackendUnavailable
from app.base.models import ModelResponse, ResponseMetadata
from utils import config

logger = logging.getLogger(__name__)

CredentialSource = Callable[[str], Optional[str]]

SYSTEM_PREAMBLE = """you're a security-focused web3 assistant. help users understand their sui wallet and spot potential risks.

WALLET DATA:
{wallet_info}

RESPONSE STYLE:
- write like you're talking to a friend
- use simple words and short sentences
- be direct. no fluff or marketing speak
- start with 'and' or 'but' if it feels natural
- avoid phrases like "dive into" or "unleash potential"
- keep it honest. say "i don't know" if you're unsure
- max 2-3 sentences per response
- lowercase "i" is fine

FOCUS ON:
- wallet security basics
- transaction patterns that look weird
- simple ways to stay safe
- practical next steps

answer the user's question directly. no intro paragraphs."""

# Number of recent transactions included in the system prompt
PROMPT_TRANSACTION_LIMIT = 5

def env_credentials(backend_id: str) -> Optional[str]:
    """Default credential source: environment lookup per backend id."""
    env_var = config.BACKEND_CREDENTIAL_ENV_VARS.get(backend_id)
    if not env_var:
        return None
    return os.getenv(env_var)

def is_usable_credential(value: Optional[str]) -> bool:
    """Reject empty keys and template placeholders such as 'your_openai_api_key_here'."""
    if not value or not value.strip():
        return False
    lowered = value.strip().lower()
    return not (lowered.startswith("your_") and lowered.endswith("_here"))

def build_system_prompt(wallet_data: Optional[Dict[str, Any]]) -> str:
    """Compose the persona preamble with a wallet snapshot.

    The output depends only on the input: JSON sections are key-sorted so
    identical wallet data always yields an identical prompt.

    Args:
        wallet_data: Wallet snapshot or None when no wallet is connected

    Returns:
        Complete system prompt string
    """
    if wallet_data is None:
        wallet_info = "No wallet data available"
    else:
        assets = wallet_data.get("assets") or []
        transactions = wallet_data.get("transactions") or []
        balance = float(wallet_data.get("balance") or 0)
        wallet_info = "\n".join([
            f"Wallet: {wallet_data.get('address', 'Not available')}",
            f"SUI Balance: {balance:.4f} SUI",
            f"Assets: {len(assets)}",
            f"Recent Transactions: {len(transactions)}",
            "Transaction Details: " + json.dumps(transactions[:PROMPT_TRANSACTION_LIMIT], indent=2, sort_keys=True),
            "Asset Details: " + json.dumps(assets, indent=2, sort_keys=True),
        ])
    return SYSTEM_PREAMBLE.format(wallet_info=wallet_info)

def create_chain_prompt(original_question: str, previous_response: str, model_name: str) -> str:
    """Build the prompt for a chain step after the first.

    Args:
        original_question: The user's question, verbatim
        previous_response: Raw text of the previous step's answer
        model_name: Display name of the model about to answer

    Returns:
        Enhanced prompt asking the model to critique and extend the previous answer
    """
    return f"""Previous AI Analysis:
"{previous_response}"

Original User Question: "{original_question}"

As {model_name}, please:
1. Review the previous analysis
2. Provide additional insights, corrections, or alternative perspectives
3. Build upon or refine the previous response
4. Focus on what the previous analysis might have missed

Do not simply restate the previous analysis. Provide a response that enhances the overall analysis."""


class LLMBackend:
    """One provider adapter. Subclasses know the provider's JSON shapes."""

    backend_id: str = ""
    display_name: str = ""

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        base_url: str,
        max_tokens: int = config.LLM_MAX_TOKENS,
        temperature: float = config.LLM_TEMPERATURE,
        timeout: float = config.BACKEND_TIMEOUT,
        clock: Callable[[], float] = time.time,
    ):
        self.api_key = api_key if is_usable_credential(api_key) else None
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout = timeout
        self.clock = clock

    @property
    def available(self) -> bool:
        return self.api_key is not None

    async def ask(self, prompt: str, wallet_data: Optional[Dict[str, Any]]) -> ModelResponse:
        """Answer a question with the wallet-aware system prompt."""
        return await self.complete(build_system_prompt(wallet_data), prompt)

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> ModelResponse:
        """Make one round-trip and wrap the answer in a ModelResponse.

        Raises:
            BackendUnavailable: No usable credential
            BackendRequestFailed: Transport error or non-success status
            BackendResponseMalformed: Success status without a usable answer
        """
        if not self.available:
            raise BackendUnavailable(self.backend_id, f"{self.display_name} is not configured. Please add the API key.")

        started = self.clock()
        url, headers, payload = self._build_request(
            system_prompt,
            user_prompt,
            self.max_tokens if max_tokens is None else max_tokens,
            self.temperature if temperature is None else temperature,
        )
        data = await self._post(url, headers, payload)
        text = self._extract_text(data)
        if text is None or text.strip() == "":
            logger.error(f"{self.display_name} returned no answer text (keys={sorted(data.keys())})")
            raise BackendResponseMalformed(self.backend_id, f"No response generated from {self.display_name}")

        finished = self.clock()
        return ModelResponse(
            model_id=self.backend_id,
            content=text.strip(),
            timestamp=int(finished * 1000),
            metadata=ResponseMetadata(
                tokens=self._extract_tokens(data),
                processing_time=int((finished - started) * 1000),
            ),
        )

    async def _post(self, url: str, headers: Dict[str, str], payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST the payload and return the decoded JSON body."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, headers=headers, json=payload)
        except httpx.TimeoutException as e:
            logger.error(f"{self.display_name} API request timed out: {str(e)}")
            raise BackendRequestFailed(self.backend_id, f"{self.display_name} request timed out") from e
        except httpx.HTTPError as e:
            logger.error(f"Failed to connect to {self.display_name} API: {str(e)}")
            raise BackendRequestFailed(self.backend_id, f"Unable to reach {self.display_name}: {str(e)}") from e

        if response.status_code >= 400:
            error_detail = self._parse_api_error(response)
            logger.error(f"{self.display_name} API error ({response.status_code}): {error_detail}")
            raise BackendRequestFailed(
                self.backend_id,
                f"{self.display_name} API error: {response.status_code} - {error_detail}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise BackendResponseMalformed(self.backend_id, f"Failed to parse {self.display_name} response: {e}") from e
        if not isinstance(data, dict):
            raise BackendResponseMalformed(self.backend_id, f"Unexpected {self.display_name} response shape")
        return data

    def _parse_api_error(self, response: Any) -> str:
        """Parse and format a provider error body.

        Args:
            response: httpx Response object with error

        Returns:
            Human-readable error message
        """
        try:
            error_json = response.json()
            if isinstance(error_json, dict) and "error" in error_json:
                error = error_json["error"]
                if not isinstance(error, dict):
                    return str(error)
                error_type = error.get("type") or error.get("status") or "unknown"
                error_code = error.get("code", "unknown")
                error_message = error.get("message", "Unknown error")

                if error_code == "model_not_found":
                    return f"Model '{self.model}' not found. Original error: {error_message}"
                elif error_code == "invalid_api_key":
                    return "Invalid API key. Check the configured API key."
                elif error_type == "rate_limit_error" or error_type == "RESOURCE_EXHAUSTED":
                    return f"Rate limit exceeded. Please try again later. {error_message}"
                else:
                    return f"{error_type} ({error_code}): {error_message}"
            return str(error_json)
        except Exception:
            return f"HTTP {response.status_code}: {str(getattr(response, 'text', ''))[:200]}"

    def _build_request(self, system_prompt: str, user_prompt: str, max_tokens: int, temperature: float):
        raise NotImplementedError

    def _extract_text(self, data: Dict[str, Any]) -> Optional[str]:
        raise NotImplementedError

    def _extract_tokens(self, data: Dict[str, Any]) -> Optional[int]:
        return None


class OpenAIBackend(LLMBackend):
    """OpenAI chat completions adapter."""

    backend_id = "openai"
    display_name = "OpenAI"

    def _build_request(self, system_prompt: str, user_prompt: str, max_tokens: int, temperature: float):
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        return f"{self.base_url}/chat/completions", headers, payload

    def _extract_text(self, data: Dict[str, Any]) -> Optional[str]:
        choices = data.get("choices")
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            return None
        message = choices[0].get("message")
        if not isinstance(message, dict):
            return None
        return _coerce_content_to_text(message.get("content"))

    def _extract_tokens(self, data: Dict[str, Any]) -> Optional[int]:
        usage = data.get("usage")
        if isinstance(usage, dict) and isinstance(usage.get("total_tokens"), int):
            return usage["total_tokens"]
        return None


class GeminiBackend(LLMBackend):
    """Google Gemini generateContent adapter."""

    backend_id = "gemini"
    display_name = "Gemini"

    def _build_request(self, system_prompt: str, user_prompt: str, max_tokens: int, temperature: float):
        headers = {
            "Content-Type": "application/json",
            "x-goog-api-key": str(self.api_key),
        }
        payload = {
            "contents": [{
                "parts": [{
                    "text": f"{system_prompt}\n\nUser Question: {user_prompt}"
                }]
            }],
            "generationConfig": {
                "maxOutputTokens": max_tokens,
                "temperature": temperature,
            },
        }
        return f"{self.base_url}/models/{self.model}:generateContent", headers, payload

    def _extract_text(self, data: Dict[str, Any]) -> Optional[str]:
        candidates = data.get("candidates")
        if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], dict):
            return None
        content = candidates[0].get("content")
        if not isinstance(content, dict):
            return None
        return _coerce_content_to_text(content.get("parts"))

    def _extract_tokens(self, data: Dict[str, Any]) -> Optional[int]:
        usage = data.get("usageMetadata")
        if isinstance(usage, dict) and isinstance(usage.get("totalTokenCount"), int):
            return usage["totalTokenCount"]
        return None


def _coerce_content_to_text(content: Any) -> Optional[str]:
    """Convert a provider content field (string, part dict or list of parts) into text."""
    if content is None:
        return None
    if isinstance(content, str):
        return content
    if isinstance(content, dict):
        direct_text = content.get("text") or content.get("content")
        return direct_text if isinstance(direct_text, str) else None
    if isinstance(content, list):
        parts: List[str] = []
        for item in content:
            if isinstance(item, str):
                parts.append(item)
            elif isinstance(item, dict) and isinstance(item.get("text"), str):
                parts.append(item["text"])
        return "".join(parts) if parts else None
    return None

def _extract_json_text(raw_text: str) -> str:
    """Best-effort extraction of a JSON object from model output text.

    Models asked for JSON may still wrap it in Markdown fences or add
    commentary around it.
    """
    text = raw_text.strip()
    if not text:
        return text

    fenced = re.search(r"```(?:json)?\s*(\{[\s\S]*?\})\s*```", text, flags=re.IGNORECASE)
    if fenced:
        return fenced.group(1).strip()

    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end != -1 and end > start:
        return text[start : end + 1].strip()

    return text

def rule_based_analysis(wallet_data: Dict[str, Any]) -> Dict[str, Any]:
    """Deterministic portfolio analysis used when no LLM answer is available."""
    balance = float(wallet_data.get("balance") or 0)
    transactions = wallet_data.get("transactions") or []
    transaction_count = len(transactions)
    successful = len([tx for tx in transactions if tx.get("success")])
    failure_rate = (transaction_count - successful) / transaction_count if transaction_count > 0 else 0

    portfolio_health = "poor"
    risk_score = 8
    if balance > 100 and failure_rate < 0.1:
        portfolio_health = "excellent"
        risk_score = 2
    elif balance > 10 and failure_rate < 0.2:
        portfolio_health = "good"
        risk_score = 4
    elif balance > 1:
        portfolio_health = "fair"
        risk_score = 6

    advice = [
        {
            "title": "Diversify Holdings",
            "description": "Consider holding different types of assets to reduce risk.",
            "priority": "medium",
        },
        {
            "title": "Monitor Gas Usage",
            "description": "Review transaction patterns to optimize gas spending.",
            "priority": "low",
        },
    ]
    if failure_rate > 0.2:
        advice.insert(0, {
            "title": "Investigate Failed Transactions",
            "description": "High failure rate detected. Review transaction parameters.",
            "priority": "high",
        })

    return {
        "summary": (
            f"Portfolio shows {portfolio_health} health with {balance:.2f} SUI balance "
            f"and {transaction_count} recent transactions."
        ),
        "portfolio_health": portfolio_health,
        "risk_score": risk_score,
        "advice": advice,
    }


class LLMInterface:
    """Backend invoker: routes a prompt to the adapter registered for a backend id."""

    def __init__(
        self,
        backends: Optional[Dict[str, LLMBackend]] = None,
        credentials: CredentialSource = env_credentials,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the interface.

        Args:
            backends: Adapters keyed by backend id; built from configuration when omitted
            credentials: Lookup used for the default adapters, read once here
            clock: Time source for response timestamps
        """
        if backends is None:
            backends = {
                "openai": OpenAIBackend(
                    credentials("openai"), config.OPENAI_MODEL, config.OPENAI_BASE_URL, clock=clock
                ),
                "gemini": GeminiBackend(
                    credentials("gemini"), config.GEMINI_MODEL, config.GEMINI_BASE_URL, clock=clock
                ),
            }
        self.backends = backends
        for backend_id, backend in self.backends.items():
            logger.info(f"Backend {backend_id}: {'configured' if backend.available else 'not configured'}")

    def availability(self) -> Dict[str, bool]:
        """Which backends have a usable credential."""
        return {backend_id: backend.available for backend_id, backend in self.backends.items()}

    async def invoke(
        self,
        backend_id: str,
        prompt: str,
        wallet_data: Optional[Dict[str, Any]],
    ) -> ModelResponse:
        """Ask one backend one question.

        Args:
            backend_id: Registry id of the backend
            prompt: Question or enhanced chain prompt
            wallet_data: Wallet snapshot for the system prompt, or None

        Returns:
            The backend's ModelResponse

        Raises:
            BackendUnavailable, BackendRequestFailed, BackendResponseMalformed
        """
        backend = self.backends.get(backend_id)
        if backend is None:
            raise BackendUnavailable(backend_id, f"Model {backend_id} not configured or not available")
        logger.debug(f"Invoking {backend_id} with prompt of {len(prompt)} chars")
        return await backend.ask(prompt, wallet_data)

    async def analyze_wallet(self, wallet_data: Dict[str, Any]) -> Dict[str, Any]:
        """Ask OpenAI for a structured portfolio analysis.

        Falls back to rule_based_analysis when the backend is unavailable,
        fails, or answers with something that is not the expected JSON.
        """
        backend = self.backends.get("openai")
        if backend is None or not backend.available:
            return rule_based_analysis(wallet_data)

        transactions = wallet_data.get("transactions") or []
        assets = wallet_data.get("assets") or []
        prompt = "\n".join([
            "Please analyze this Sui wallet and provide insights:",
            "",
            f"Wallet: {wallet_data.get('address', 'Not available')}",
            f"Balance: {wallet_data.get('balance', 0)} SUI",
            f"Assets: {len(assets)} different types",
            f"Recent Transactions: {len(transactions)}",
            "",
            "Transaction Details:",
            *[
                f"- {tx.get('kind')} ({'Success' if tx.get('success') else 'Failed'}) - Gas: {tx.get('gas_used')}"
                for tx in transactions
            ],
            "",
            "Asset Breakdown:",
            *[f"- {a.get('symbol')}: {a.get('balance')} ({a.get('coin_type')})" for a in assets],
            "",
            "Respond with a JSON object with keys: summary (string), portfolio_health "
            "(excellent|good|fair|poor), risk_score (1-10, 10 is highest risk), and advice "
            "(list of objects with title, description, priority high|medium|low, optional estimated_savings).",
        ])

        try:
            response = await backend.complete(
                "You are an expert Web3 portfolio analyst. Respond only with valid JSON.",
                prompt,
                max_tokens=config.ANALYSIS_MAX_TOKENS,
                temperature=0.3,
            )
            parsed = json.loads(_extract_json_text(response.content))
            for field in ("summary", "portfolio_health", "risk_score", "advice"):
                if field not in parsed:
                    raise ValueError(f"Missing {field} in analysis response")
            return parsed
        except json.JSONDecodeError as e:
            logger.warning(f"Wallet analysis was not valid JSON, using rule-based analysis: {str(e)}")
        except Exception as e:
            logger.warning(f"Wallet analysis failed, using rule-based analysis: {str(e)}")
        return rule_based_analysis(wallet_data)
