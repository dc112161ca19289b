"""Core functionality for the generation relay.

Architecture Overview
---------------------
1. **Configuration Layer** (config.py):
   - Environment-based configuration using Pydantic Settings
   - All settings prefixed with GENRELAY_ in .env files

2. **Input Layer** (model_specs.py, normalizer.py):
   - Per-model allow-lists, aliases, and defaults as a data table
   - Pure normalization of untrusted client parameters

3. **Provider Layer** (provider.py, invoker.py):
   - Replicate HTTP client
   - Bounded retry in synchronous mode, webhook submission in callback mode

4. **Materialization Layer** (outputs.py, materializer.py, storage.py, references.py):
   - Output-shape resolution and extension inference
   - Download, upload to Supabase Storage, public URL
   - Chat-message reference rows after callbacks

5. **Handler** (handler.py):
   - Orchestrates the layers for ``POST /api/generate`` and the callback route
"""

from genrelay.core.config import GenRelayConfig, config
from genrelay.core.handler import GenerationHandler
from genrelay.core.invoker import ProviderInvoker
from genrelay.core.materializer import ResultMaterializer
from genrelay.core.model_specs import MODEL_SPECS, ModelInputSpec, get_model_spec
from genrelay.core.types import GenerationRequest, MediaKind

__all__ = [
    "GenRelayConfig",
    "config",
    "GenerationHandler",
    "GenerationRequest",
    "MediaKind",
    "MODEL_SPECS",
    "ModelInputSpec",
    "get_model_spec",
    "ProviderInvoker",
    "ResultMaterializer",
]
