# summary_chat/config.py
"""
Configuration for the Summary Chat ingestion pipeline.

This file centralizes all tunable parameters for extraction, sizing,
retrieval and generation. Every value can be overridden through an
environment variable of the same name.
"""

import os


def _int(name: str, default: int) -> int:
    return int(os.getenv(name, default))


def _float(name: str, default: float) -> float:
    return float(os.getenv(name, default))


# ========== CONTENT SIZING ==========

# Hard ceiling for a stored message body (characters)
MAX_CONTENT_LENGTH = _int("MAX_CONTENT_LENGTH", 12000)

# Above this, even plain text becomes the thread's condensed representation
SUMMARY_THRESHOLD = _int("SUMMARY_THRESHOLD", 5000)

# Truncated rows keep MAX_CONTENT_LENGTH - TRUNCATION_HEADROOM characters
TRUNCATION_HEADROOM = 100
TRUNCATION_MARKER = "...(truncated)"

# Thread titles are the first N characters of the first submission
THREAD_TITLE_LENGTH = _int("THREAD_TITLE_LENGTH", 20)


# ========== EXTRACTION ==========

MAX_FILE_SIZE_MB = _int("MAX_FILE_SIZE_MB", 10)

LINK_FETCH_TIMEOUT_SECONDS = _float("LINK_FETCH_TIMEOUT_SECONDS", 15.0)

LINK_FETCH_USER_AGENT = os.getenv(
    "LINK_FETCH_USER_AGENT",
    "Mozilla/5.0 (compatible; SummaryChatBot/1.0; +https://example.com/bot)",
)


# ========== RETRIEVAL INDEX ==========

# Character windows (matches the splitter used when offloading documents)
CHUNK_SIZE = _int("CHUNK_SIZE", 1000)
CHUNK_OVERLAP = _int("CHUNK_OVERLAP", 200)

# Chunks embedded + upserted per call
INDEX_BATCH_SIZE = _int("INDEX_BATCH_SIZE", 20)

INDEX_TIMEOUT_SECONDS = _float("INDEX_TIMEOUT_SECONDS", 8.0)
INDEX_MAX_RETRIES = _int("INDEX_MAX_RETRIES", 2)
INDEX_RETRY_BACKOFF_SECONDS = _float("INDEX_RETRY_BACKOFF_SECONDS", 0.2)

# Chunks pulled into a follow-up question
RETRIEVAL_MAX_CHUNKS = _int("RETRIEVAL_MAX_CHUNKS", 3)

EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")

QDRANT_URL = os.getenv("QDRANT_URL", "http://localhost:6333")
QDRANT_API_KEY = os.getenv("QDRANT_API_KEY")
QDRANT_COLLECTION = os.getenv("QDRANT_COLLECTION", "summary-chat")


# ========== LLM CONFIGURATION ==========

LLM_MODEL = os.getenv("LLM_MODEL", "gpt-4o")
LLM_TEMPERATURE = _float("LLM_TEMPERATURE", 0.3)
LLM_MAX_TOKENS = _int("LLM_MAX_TOKENS", 2000)

# Streaming may legitimately run much longer than index calls
LLM_TIMEOUT_SECONDS = _float("LLM_TIMEOUT_SECONDS", 120.0)


# ========== PERSISTENCE / AUTH ==========

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    "sqlite+aiosqlite:///./storage/summary_chat.db",
)

# No default: without a secret every token is rejected
JWT_SECRET = os.getenv("JWT_SECRET")
JWT_ALGORITHM = "HS256"
AUTH_COOKIE_NAME = "token"


# ========== DESIGN TRADE-OFFS (DOCUMENTED) ==========

"""
TRADE-OFF DECISIONS:

1. MAX_CONTENT_LENGTH = 12000 characters:
   - Anything longer is stored as an excerpt and offloaded to the index
   - Keeps every turn of a long conversation affordable to resend

2. SUMMARY_THRESHOLD = 5000 characters:
   - Long pasted text anchors the thread as its primary source
   - Follow-ups on such threads skip retrieval entirely

3. RETRIEVAL_MAX_CHUNKS = 3:
   - Fewer (1) → cheap but misses cross-section answers
   - More (5+) → larger prompts on every follow-up

4. INDEX_TIMEOUT_SECONDS = 8, INDEX_MAX_RETRIES = 2:
   - Index trouble must degrade answers, never block them
"""
