"""privacy-vault — reversible PII tokenization in front of LLM services."""

from .codec import TOKEN_PATTERN, derive_token
from .completion import CompletionClient, CompletionParams, OpenAICompletionClient
from .config import VaultSettings, create_relay, create_store, load_config, load_from_env, load_from_yaml
from .errors import (
    CompletionFailedError,
    ConfigurationError,
    InvalidInputError,
    StoreUnavailableError,
    VaultError,
)
from .patterns import DETECTION_PIPELINE, Detector
from .relay import SecureRelay
from .store import MemoryTokenStore, TokenStore
from .store_sqlite import SqliteTokenStore
from .streaming import StreamingDetokenizer
from .tokenizer import Detokenizer, Tokenizer
from .types import Detection, TokenizedText, TokenRecord

__all__ = [
    "TOKEN_PATTERN", "derive_token",
    "CompletionClient", "CompletionParams", "OpenAICompletionClient",
    "VaultSettings", "create_relay", "create_store", "load_config", "load_from_env", "load_from_yaml",
    "VaultError", "InvalidInputError", "StoreUnavailableError", "CompletionFailedError", "ConfigurationError",
    "DETECTION_PIPELINE", "Detector",
    "SecureRelay",
    "TokenStore", "MemoryTokenStore", "SqliteTokenStore",
    "StreamingDetokenizer",
    "Tokenizer", "Detokenizer",
    "Detection", "TokenizedText", "TokenRecord",
]
__version__ = "0.1.0"
