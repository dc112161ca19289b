"""genrelay - Replicate-to-Supabase generation relay for character media."""

__version__ = "0.3.0"

from genrelay.core.config import GenRelayConfig, config

__all__ = [
    "GenRelayConfig",
    "config",
]
