"""
Centralized constants for the revision pipeline.
All magic numbers extracted from the codebase.
"""

# ===========================================
# SUGGESTION GENERATION
# ===========================================
ADJUST_BATCH_SIZE = 20                # paragraphs per adjust prompt
UPDATE_BATCH_SIZE = 20
IMPROVE_BATCH_SIZE = 20
ADAPT_BATCH_SIZE = 15
TRANSLATE_BATCH_SIZE = 10

DEFAULT_CONFIDENCE = 0.9
TRANSLATION_CONFIDENCE = 0.95
ADAPT_TEMPERATURE = 0.3
IMPROVE_TEMPERATURE = 0.4
UPDATE_TEMPERATURE = 0.2
TRANSLATION_TEMPERATURE = 0.3

DEFAULT_MAX_OUTPUT_TOKENS = 8000      # per generation call
MODEL_MAX_OUTPUT_TOKENS = {
    "gpt-4o": 16384,
    "gpt-4o-mini": 16384,
    "gpt-4-turbo": 4096,
    "claude-sonnet-4-20250514": 8192,
    "claude-3-5-haiku-20241022": 8192,
    "gemini-2.0-flash": 8192,
    "gemini-1.5-pro": 8192,
    "grok-2-latest": 8192,
}

# ===========================================
# REFERENCES
# ===========================================
REFERENCE_MAX_CHARS = 10000           # content kept per reference

# ===========================================
# CONTEXT / RETRIEVAL
# ===========================================
CONTEXT_TOP_K = 16
CONTEXT_TOP_K_PER_VERSION = 5
CHUNK_TARGET_CHARS = 1200
CHARS_PER_PAGE = 3000
INDEX_CACHE_MAX_VERSIONS = 64
INDEX_CACHE_TTL_SECONDS = 3600
ANSWER_TEMPERATURE = 0.2

# ===========================================
# JOBS / PIPELINE
# ===========================================
PAUSE_POLL_INTERVAL = 2.0             # seconds between paused-status rechecks
SUBJOB_TIMEOUT_SECONDS = 1800         # 30 minutes
SUBJOB_POLL_INTERVAL = 3.0

# ===========================================
# PROVIDER RETRIES
# ===========================================
RATE_LIMIT_MAX_ATTEMPTS = 3
RATE_LIMIT_DEFAULT_DELAY = 30.0       # seconds when the provider gives no hint

# ===========================================
# FILE HANDLING
# ===========================================
SUPPORTED_EXTENSIONS = ['.txt', '.md', '.docx']
DATA_DIR = 'data'
STORAGE_DIR = 'data/storage'
DB_PATH = 'data/revisions.db'

# ===========================================
# LOGGING
# ===========================================
LOG_LEVEL = 'INFO'
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_FILE = 'logs/revisions.log'
LOG_MAX_SIZE_MB = 10
LOG_BACKUP_COUNT = 5
