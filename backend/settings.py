import os


class Settings:
    # Default upstream endpoint: OpenAI's public Responses API
    DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"

    # Env var holding each provider's API key (Llama models are served via Groq)
    PROVIDER_KEY_ENV = {
        "openai": "OPENAI_API_KEY",
        "anthropic": "ANTHROPIC_API_KEY",
        "google": "GOOGLE_API_KEY",
        "meta": "GROQ_API_KEY",
        "perplexity": "PERPLEXITY_API_KEY",
    }

    def __init__(self):
        self._base_url = os.environ.get("OPENAI_BASE_URL", self.DEFAULT_OPENAI_BASE_URL).rstrip("/")
        self._timeout = float(os.environ.get("UPSTREAM_TIMEOUT", "60"))
        self._log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
        origins = os.environ.get("ALLOWED_ORIGINS", "*")
        self._allowed_origins = [o.strip() for o in origins.split(",") if o.strip()]

    def get_base_url(self) -> str:
        """Returns the base URL for the upstream API (e.g. 'https://api.openai.com/v1')."""
        return self._base_url

    def set_base_url(self, url: str):
        """Switch the active upstream endpoint at runtime."""
        self._base_url = url.rstrip("/")

    def get_default_base_url(self) -> str:
        return self.DEFAULT_OPENAI_BASE_URL

    def get_timeout(self) -> float:
        return self._timeout

    def get_log_level(self) -> str:
        return self._log_level

    def get_allowed_origins(self) -> list[str]:
        return self._allowed_origins

    def get_api_key(self, provider: str = "openai") -> str:
        """Returns the API key for a provider, read fresh from the environment."""
        env_name = self.PROVIDER_KEY_ENV.get(provider)
        if not env_name:
            return ""
        return os.environ.get(env_name, "").strip()

    def is_custom_upstream(self) -> bool:
        """Returns True if pointing somewhere other than OpenAI (e.g. a local emulator)."""
        return "api.openai.com" not in self._base_url


settings = Settings()
