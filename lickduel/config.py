"""Application configuration."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """App settings with env var overrides."""

    # Tempo
    default_bpm: int = 120
    min_bpm: int = 40
    max_bpm: int = 300
    beats_per_bar: int = 4
    metronome_click: bool = True

    # Recognition
    timing_tolerance_ms: float = 150.0
    default_difficulty: int = 50

    # Duel
    total_bars: int = 8
    duel_timing_filter: str = "both"  # "straight" | "swing" | "both"

    # Phrase library
    max_phrases_per_mode: int = 5
    playback_tail_ms: float = 200.0

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    model_config = {"env_prefix": "LICKDUEL_"}


settings = Settings()


def clamp_bpm(bpm: float, config: Settings | None = None) -> int:
    """Clamp a requested tempo to the range of *config* (default: ``settings``)."""
    config = config or settings
    return int(max(config.min_bpm, min(config.max_bpm, round(bpm))))
