"""Application configuration using Pydantic Settings.

All configuration is loaded from environment variables.
See .env.example for required variables.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # ==========================================================================
    # API Keys
    # ==========================================================================
    deepgram_api_key: SecretStr = Field(description="Deepgram API key for streaming STT")
    groq_api_key: SecretStr = Field(description="Groq API key for LLM")
    elevenlabs_api_key: SecretStr | None = Field(
        default=None, description="ElevenLabs API key for TTS"
    )

    # ==========================================================================
    # Speech Recognition (Deepgram live socket)
    # ==========================================================================
    deepgram_model: str = Field(default="nova-3", description="Deepgram STT model")
    deepgram_language: str = Field(default="en-GB", description="Recognition language")
    deepgram_endpointing_ms: int = Field(
        default=100,
        description="Silence (ms) before Deepgram finalizes a segment",
    )
    audio_sample_rate: int = Field(
        default=48000,
        description="Sample rate of the client's mono linear16 PCM audio",
    )
    stt_keepalive_seconds: float = Field(
        default=12.0, description="Interval between keepalive frames on the STT socket"
    )
    stt_reconnect_delay_seconds: float = Field(
        default=0.2, description="Pause before reconnecting after a failed audio send"
    )
    stt_connect_timeout_seconds: float = Field(
        default=10.0, description="Timeout for opening the STT socket"
    )

    # ==========================================================================
    # Language Model (Groq)
    # ==========================================================================
    llm_model: str = Field(
        default="moonshotai/kimi-k2-instruct-0905",
        description="Groq model used for conversational replies",
    )
    llm_temperature: float = Field(default=0.2, description="Sampling temperature")
    llm_top_p: float = Field(default=0.9, description="Nucleus sampling cutoff")
    llm_max_tokens: int = Field(default=512, description="Maximum reply tokens")
    llm_max_attempts: int = Field(
        default=3,
        description="Completion attempts before giving up with an empty reply",
    )
    system_prompt_path: str | None = Field(
        default=None,
        description="Optional file whose contents replace the built-in system prompt",
    )
    bookings_csv_path: str = Field(
        default="bookings.csv",
        description="CSV file written by the store_on_csv tool",
    )

    # ==========================================================================
    # TTS Configuration
    # ==========================================================================
    tts_provider: Literal["elevenlabs", "deepgram"] = Field(
        default="elevenlabs",
        description="Speech synthesis provider",
    )
    elevenlabs_voice_id: str = Field(
        default="JBFqnCBsd6RMkjVDRZzb",
        description="Default ElevenLabs voice ID",
    )
    elevenlabs_model_id: str = Field(
        default="eleven_flash_v2_5",
        description="Default ElevenLabs model ID",
    )
    elevenlabs_output_format: str = Field(
        default="mp3_44100_128",
        description="ElevenLabs audio container/bitrate",
    )
    deepgram_tts_model: str = Field(
        default="aura-2-thalia-en",
        description="Deepgram Aura voice model",
    )

    # ==========================================================================
    # Redis (conversation history)
    # ==========================================================================
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis URL for conversation history",
    )
    redis_ttl_seconds: int = Field(
        default=86400, description="Expiry of a session's stored history"
    )
    history_max_messages: int = Field(
        default=200, description="Most recent messages kept per session"
    )

    # ==========================================================================
    # Telemetry
    # ==========================================================================
    latency_log_path: str = Field(
        default="logs/latency.jsonl",
        description="Append-only JSON lines file for per-turn latency records",
    )

    # ==========================================================================
    # Application
    # ==========================================================================
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Logging level"
    )
    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Deployment environment"
    )

    # ==========================================================================
    # Derived Properties
    # ==========================================================================
    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Use dependency injection in FastAPI:
        settings: Settings = Depends(get_settings)
    """
    return Settings()  # type: ignore[call-arg]  # loads from env
