"""Pipeline configuration with sensible defaults."""
import os
from pathlib import Path

# Paths
PROJECT_ROOT = Path(__file__).parent.parent
INDEX_DIR = Path(os.getenv("INDEX_DIR", str(PROJECT_ROOT / "data" / "index")))

# Embedding provider (any OpenAI-compatible /embeddings endpoint)
EMBEDDING_BASE_URL = os.getenv("EMBEDDING_BASE_URL", "https://api.openai.com/v1")
EMBEDDING_API_KEY = os.getenv("EMBEDDING_API_KEY", os.getenv("OPENAI_API_KEY", ""))
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
EMBEDDING_TIMEOUT = float(os.getenv("EMBEDDING_TIMEOUT", "30.0"))

# Batching and retry
EMBEDDING_BATCH_SIZE = int(os.getenv("EMBEDDING_BATCH_SIZE", "100"))
EMBEDDING_MAX_RETRIES = int(os.getenv("EMBEDDING_MAX_RETRIES", "3"))
EMBEDDING_RETRY_BASE_DELAY = float(os.getenv("EMBEDDING_RETRY_BASE_DELAY", "1.0"))  # x 2^attempt
EMBEDDING_INTER_BATCH_DELAY = float(os.getenv("EMBEDDING_INTER_BATCH_DELAY", "0.1"))
EMBEDDING_MAX_INPUT_CHARS = int(os.getenv("EMBEDDING_MAX_INPUT_CHARS", "8000"))
EMBEDDING_PRICE_PER_1K_TOKENS = float(os.getenv("EMBEDDING_PRICE_PER_1K_TOKENS", "0.00002"))

# Section parsing (characters)
MIN_SECTION_LENGTH = int(os.getenv("MIN_SECTION_LENGTH", "50"))
MAX_SECTION_LENGTH = int(os.getenv("MAX_SECTION_LENGTH", "2000"))

# Chunking (characters)
MIN_CHUNK_SIZE = int(os.getenv("MIN_CHUNK_SIZE", "100"))
MAX_CHUNK_SIZE = int(os.getenv("MAX_CHUNK_SIZE", "1500"))
CHUNK_OVERLAP = int(os.getenv("CHUNK_OVERLAP", "100"))
CODE_CONTEXT_WINDOW = int(os.getenv("CODE_CONTEXT_WINDOW", "200"))
MAX_CHUNKS_PER_DOCUMENT = int(os.getenv("MAX_CHUNKS_PER_DOCUMENT", "50"))

# Search
SEARCH_LIMIT = int(os.getenv("SEARCH_LIMIT", "5"))
SEARCH_MIN_SIMILARITY = float(os.getenv("SEARCH_MIN_SIMILARITY", "0.1"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
