import os
from dotenv import load_dotenv

load_dotenv()

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./taskengine.db")

# Queue polling
TASK_POLL_INTERVAL_SECONDS = float(os.getenv("TASK_POLL_INTERVAL_SECONDS", "10"))
WORKER_POOL_SIZE = int(os.getenv("WORKER_POOL_SIZE", "1"))
WORKER_MAX_ITEMS_PER_TICK = int(os.getenv("WORKER_MAX_ITEMS_PER_TICK", "10"))

# Outbound service calls
HTTP_CONNECT_TIMEOUT_S = float(os.getenv("HTTP_CONNECT_TIMEOUT_S", "3.0"))
HTTP_CALL_THREADS = int(os.getenv("HTTP_CALL_THREADS", "16"))
DEFAULT_SERVICE_TIMEOUT_S = int(os.getenv("DEFAULT_SERVICE_TIMEOUT_S", "30"))
DEFAULT_MAX_RETRIES = int(os.getenv("DEFAULT_MAX_RETRIES", "3"))

# LLM providers
LLM_ENCRYPTION_KEY_ENV = "LLM_ENCRYPTION_KEY"
LLM_TIMEOUT_S = float(os.getenv("LLM_TIMEOUT_S", "60"))
LLM_MAX_RETRIES = int(os.getenv("LLM_MAX_RETRIES", "3"))
LLM_RETRY_BASE_DELAY_S = float(os.getenv("LLM_RETRY_BASE_DELAY_S", "1.0"))
LLM_RETRY_JITTER_S = float(os.getenv("LLM_RETRY_JITTER_S", "0.0"))  # 0 keeps plain doubling

DEFAULT_LLM_PROVIDER = os.getenv("DEFAULT_LLM_PROVIDER", "anthropic")

DEEPSEEK_DEFAULT_BASE_URL = "https://api.deepseek.com/v1"

# Environment fallback per provider, used when no llm_interfaces row resolves
PROVIDER_ENV = {
    "anthropic": {
        "api_key": ("ANTHROPIC_API_KEY",),
        "default_model": "CLAUDE_DEFAULT_MODEL",
        "base_url": None,
    },
    "openai": {
        "api_key": ("OPENAI_API_KEY",),
        "default_model": "OPENAI_DEFAULT_MODEL",
        "base_url": "OPENAI_BASE_URL",
    },
    "deepseek": {
        "api_key": ("DEEPSEEK_API_KEY", "OPENAI_API_KEY"),
        "default_model": "DEEPSEEK_DEFAULT_MODEL",
        "base_url": "DEEPSEEK_BASE_URL",
    },
    "gemini": {
        "api_key": ("GEMINI_API_KEY",),
        "default_model": "GEMINI_DEFAULT_MODEL",
        "base_url": None,
    },
}

# "continue" logs and keeps executing when an audit write fails; "raise" propagates
AUDIT_WRITE_FAILURE_POLICY = os.getenv("AUDIT_WRITE_FAILURE_POLICY", "continue")

LOG_FORMAT = os.getenv("LOG_FORMAT", "console")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
