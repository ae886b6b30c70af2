from pydantic_settings import BaseSettings

PLACEHOLDER_API_KEY = "your_api_key_here"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Gemini
    gemini_api_key: str = ""
    gemini_model: str = "gemini-1.5-flash"
    gemini_speech_model: str = "gemini-2.5-flash-preview-tts"
    gemini_api_version: str = "v1beta"
    gemini_base_url: str = "https://generativelanguage.googleapis.com"

    # Request shaping
    generation_temperature: float = 0.7
    generation_top_p: float = 0.95
    generation_max_output_tokens: int = 8192
    speech_temperature: float = 0.3

    # Batching
    batch_size: int = 2
    recap_limit: int = 6
    max_buffer_bytes: int = 2_000_000

    # Retry (seconds)
    retry_max_attempts: int = 3
    retry_base_delay: float = 0.3
    retry_max_delay: float = 4.0
    retry_jitter_fraction: float = 0.2

    # Autosave debounce (seconds)
    autosave_delay: float = 1.0

    # Persistence
    database_url: str = "sqlite:///data/echoforge.db"
    audio_dir: str = "data/audio"

    # Voices
    host_a_voice: str = "Kore"
    host_b_voice: str = "Puck"

    # Diagnostics
    log_wire: bool = False

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def api_base(self) -> str:
        return f"{self.gemini_base_url.rstrip('/')}/{self.gemini_api_version}"

    def require_api_key(self) -> str:
        key = self.gemini_api_key.strip()
        if not key or key == PLACEHOLDER_API_KEY:
            raise ValueError(
                "Missing GEMINI_API_KEY. Set it via an environment variable or .env file."
            )
        return key


def get_settings() -> Settings:
    return Settings()
