"""Configuration management for the sommelier recommendation pipeline.

Loads environment variables from system environment and .env file.
Priority order: system environment > .env file > hardcoded defaults
"""

import os

from dotenv import load_dotenv


# Load .env file (if exists, silently continues if missing)
load_dotenv()


def _as_bool(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


class Config:
    """Application configuration loaded from environment variables."""

    def __init__(self) -> None:
        """Initialize configuration from environment variables."""
        # Gemini API key: only required when the Gemini completion adapter is built
        self.GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")
        # Completion model. Default: gemini-2.5-flash (fast, cost-effective)
        self.GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
        # LLM Model Parameters
        # Temperature: 0.7 keeps sommelier prose varied without drifting off-policy
        self.TEMPERATURE: float = float(os.getenv("TEMPERATURE", "0.7"))
        # Max Output Tokens: enough for three recommendations with reasoning
        self.MAX_OUTPUT_TOKENS: int = int(os.getenv("MAX_OUTPUT_TOKENS", "1500"))
        # Per-call completion timeout (seconds)
        self.COMPLETION_TIMEOUT_SECONDS: float = float(os.getenv("COMPLETION_TIMEOUT_SECONDS", "8"))
        # Overall deadline across retrieval, prompt building and completion (seconds)
        self.REQUEST_DEADLINE_SECONDS: float = float(os.getenv("REQUEST_DEADLINE_SECONDS", "10"))

        # Retry Configuration
        # MAX_RETRIES: total attempts per completion call (first try included)
        self.MAX_RETRIES: int = int(os.getenv("MAX_RETRIES", "3"))
        # RETRY_BASE_DELAY / RETRY_MAX_DELAY: backoff bounds in seconds
        self.RETRY_BASE_DELAY: float = float(os.getenv("RETRY_BASE_DELAY", "1"))
        self.RETRY_MAX_DELAY: float = float(os.getenv("RETRY_MAX_DELAY", "30"))
        # RETRY_EXPONENTIAL_BASE: delay multiplier between attempts
        self.RETRY_EXPONENTIAL_BASE: float = float(os.getenv("RETRY_EXPONENTIAL_BASE", "2"))
        # RETRY_JITTER: perturb each delay by +/-25%
        self.RETRY_JITTER: bool = _as_bool(os.getenv("RETRY_JITTER", "true"))

        # Circuit Breaker Configuration
        # Consecutive failures before the breaker opens
        self.CIRCUIT_FAILURE_THRESHOLD: int = int(os.getenv("CIRCUIT_FAILURE_THRESHOLD", "5"))
        # Seconds the breaker stays open before allowing a trial call
        self.CIRCUIT_RECOVERY_TIMEOUT: float = float(os.getenv("CIRCUIT_RECOVERY_TIMEOUT", "60"))

        # Knowledge Base Configuration
        # ENABLE_KNOWLEDGE_BASE: attach the vector knowledge retriever to the engine
        self.ENABLE_KNOWLEDGE_BASE: bool = _as_bool(os.getenv("ENABLE_KNOWLEDGE_BASE", "true"))
        # LanceDB location and table holding wine vectors
        self.KNOWLEDGE_DB_URI: str = os.getenv("KNOWLEDGE_DB_URI", "tmp/lancedb")
        self.KNOWLEDGE_TABLE: str = os.getenv("KNOWLEDGE_TABLE", "wine_knowledge")
        # Number of knowledge snippets retrieved per request
        self.KNOWLEDGE_TOP_K: int = int(os.getenv("KNOWLEDGE_TOP_K", "5"))

        # Recommendation Configuration
        # Confidence assigned to each parsed recommendation (0.0 - 1.0). Default: 0.8
        self.RECOMMENDATION_CONFIDENCE: float = float(os.getenv("RECOMMENDATION_CONFIDENCE", "0.8"))
        # Maximum number of recommendations per response (1 - 3). Default: 3
        self.MAX_RECOMMENDATIONS: int = int(os.getenv("MAX_RECOMMENDATIONS", "3"))

    def validate(self) -> None:
        """Validate configuration values.

        Raises:
            ValueError: If any value is out of its accepted range.
        """
        if not (0.0 <= self.TEMPERATURE <= 2.0):
            raise ValueError(
                f"TEMPERATURE must be between 0.0 and 2.0, got: {self.TEMPERATURE}"
            )
        if self.MAX_OUTPUT_TOKENS < 1:
            raise ValueError(
                f"MAX_OUTPUT_TOKENS must be at least 1, got: {self.MAX_OUTPUT_TOKENS}"
            )
        if self.COMPLETION_TIMEOUT_SECONDS <= 0:
            raise ValueError(
                f"COMPLETION_TIMEOUT_SECONDS must be positive, got: {self.COMPLETION_TIMEOUT_SECONDS}"
            )
        if self.REQUEST_DEADLINE_SECONDS <= 0:
            raise ValueError(
                f"REQUEST_DEADLINE_SECONDS must be positive, got: {self.REQUEST_DEADLINE_SECONDS}"
            )
        if self.MAX_RETRIES < 1:
            raise ValueError(
                f"MAX_RETRIES must be at least 1, got: {self.MAX_RETRIES}"
            )
        if self.RETRY_BASE_DELAY < 0:
            raise ValueError(
                f"RETRY_BASE_DELAY must not be negative, got: {self.RETRY_BASE_DELAY}"
            )
        if self.RETRY_MAX_DELAY < self.RETRY_BASE_DELAY:
            raise ValueError(
                f"RETRY_MAX_DELAY must be >= RETRY_BASE_DELAY, got: {self.RETRY_MAX_DELAY}"
            )
        if self.RETRY_EXPONENTIAL_BASE < 1:
            raise ValueError(
                f"RETRY_EXPONENTIAL_BASE must be at least 1, got: {self.RETRY_EXPONENTIAL_BASE}"
            )
        if self.CIRCUIT_FAILURE_THRESHOLD < 1:
            raise ValueError(
                f"CIRCUIT_FAILURE_THRESHOLD must be at least 1, got: {self.CIRCUIT_FAILURE_THRESHOLD}"
            )
        if self.CIRCUIT_RECOVERY_TIMEOUT <= 0:
            raise ValueError(
                f"CIRCUIT_RECOVERY_TIMEOUT must be positive, got: {self.CIRCUIT_RECOVERY_TIMEOUT}"
            )
        if self.KNOWLEDGE_TOP_K < 1:
            raise ValueError(
                f"KNOWLEDGE_TOP_K must be at least 1, got: {self.KNOWLEDGE_TOP_K}"
            )
        if not (0.0 < self.RECOMMENDATION_CONFIDENCE <= 1.0):
            raise ValueError(
                f"RECOMMENDATION_CONFIDENCE must be in (0.0, 1.0], got: {self.RECOMMENDATION_CONFIDENCE}"
            )
        if not (1 <= self.MAX_RECOMMENDATIONS <= 3):
            raise ValueError(
                f"MAX_RECOMMENDATIONS must be between 1 and 3, got: {self.MAX_RECOMMENDATIONS}"
            )


# Create module-level config instance and validate immediately
config = Config()
config.validate()
