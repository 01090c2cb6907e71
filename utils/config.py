"""
Configuration module to handle environment variables.
"""
import logging
import os
from typing import Any
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

def get_env_var(name: str, default: Any = None) -> Any:
    """
    Get an environment variable or return a default value if not found.

    Args:
        name (str): The name of the environment variable
        default: The default value to return if the variable is not found

    Returns:
        The value of the environment variable or the default value
    """
    value = os.getenv(name, default)
    if value is None:
        raise ValueError(f"Environment variable {name} not found and no default provided")
    return value

def get_int_env_var(name: str, default: int) -> int:
    """
    Get an integer environment variable, falling back to the default on bad input.

    Args:
        name (str): The name of the environment variable
        default (int): Value used when the variable is missing or not an integer

    Returns:
        int: The parsed value
    """
    raw = get_env_var(name, str(default))
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid %s value '%s', using default %s", name, raw, default)
        return default

def get_float_env_var(name: str, default: float) -> float:
    """Float counterpart of get_int_env_var."""
    raw = get_env_var(name, str(default))
    try:
        return float(raw)
    except ValueError:
        logger.warning("Invalid %s value '%s', using default %s", name, raw, default)
        return default

# LLM backend credentials: backend id -> environment variable holding its key.
# A missing or empty key disables the backend for this process.
BACKEND_CREDENTIAL_ENV_VARS = {
    'openai': 'OPENAI_API_KEY',
    'gemini': 'GEMINI_API_KEY',
}

# LLM backend settings
OPENAI_BASE_URL: str = get_env_var('OPENAI_BASE_URL', 'https://api.openai.com/v1')
OPENAI_MODEL: str = get_env_var('OPENAI_MODEL', 'gpt-4o-mini')
GEMINI_BASE_URL: str = get_env_var('GEMINI_BASE_URL', 'https://generativelanguage.googleapis.com/v1beta')
GEMINI_MODEL: str = get_env_var('GEMINI_MODEL', 'gemini-2.0-flash-lite')
LLM_MAX_TOKENS: int = get_int_env_var('LLM_MAX_TOKENS', 200)
LLM_TEMPERATURE: float = get_float_env_var('LLM_TEMPERATURE', 0.7)
ANALYSIS_MAX_TOKENS: int = get_int_env_var('ANALYSIS_MAX_TOKENS', 800)
BACKEND_TIMEOUT: float = get_float_env_var('BACKEND_TIMEOUT', 30.0)  # Per backend call, in seconds

# Training data settings
MAX_TRAINING_ENTRIES: int = get_int_env_var('MAX_TRAINING_ENTRIES', 1000)
TRAINING_DATA_KEY: str = get_env_var('TRAINING_DATA_KEY', 'suisage_training_data')

# Storage settings: "file", "postgres" or "memory"
STORAGE_BACKEND: str = get_env_var('STORAGE_BACKEND', 'file')
STORAGE_PATH: str = get_env_var('STORAGE_PATH', 'suisage_store.json')

# Database settings (used when STORAGE_BACKEND=postgres)
DB_NAME: str = get_env_var('DB_NAME', 'suisage')
DB_HOST: str = get_env_var('DB_HOST', 'localhost')
DB_PORT: int = get_int_env_var('DB_PORT', 5432)
DB_USER: str = get_env_var('DB_USER', 'postgres')
DB_PASSWORD: str = get_env_var('DB_PASSWORD', 'postgres')

# Database connection settings
DATABASE_RETRY_MAX_ATTEMPTS: int = 5  # Maximum number of retries for database operations
DATABASE_RETRY_INITIAL_WAIT: float = 0.1  # Initial wait between retries in seconds (doubles with each retry)

# API Server settings
API_HOST: str = get_env_var('API_HOST', '0.0.0.0')  # Default: bind to all interfaces
API_PORT: int = get_int_env_var('API_PORT', 10000)

LOG_LEVEL: str = get_env_var('LOG_LEVEL', 'INFO')
