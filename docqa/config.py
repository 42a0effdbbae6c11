"""Application configuration with sensible defaults."""
import os

# Ollama configuration
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
CHAT_MODEL = os.getenv("CHAT_MODEL", "llama3.2:3b")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "all-minilm:latest")
EMBEDDING_DIM = int(os.getenv("EMBEDDING_DIM", "384"))         # all-minilm / MiniLM-L6
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "60.0"))

# RAG parameters (character-based to avoid tokenizer inconsistencies)
CHUNK_SIZE = int(os.getenv("CHUNK_SIZE", "400"))
CHUNK_OVERLAP = int(os.getenv("CHUNK_OVERLAP", "100"))
MIN_CHUNK_CHARS = int(os.getenv("MIN_CHUNK_CHARS", "20"))
CHUNK_SEPARATORS = ["\n\n", "\n", ". ", " ", ""]
RETRIEVAL_TOP_K = int(os.getenv("RETRIEVAL_TOP_K", "3"))
ASK_TOP_K = int(os.getenv("ASK_TOP_K", "5"))                   # chunks injected into the prompt

# Concurrency
EMBED_CONCURRENCY = int(os.getenv("EMBED_CONCURRENCY", "4"))
EXTRACT_CONCURRENCY = int(os.getenv("EXTRACT_CONCURRENCY", "5"))

# Boilerplate stripped from every page before chunking ("||"-separated regexes)
DEFAULT_BOILERPLATE_PATTERNS = [
    r"nimbleedge pvt\. ltd\.",
    r"nimbleedge pvt\. Itd\.",  # OCR typo in the source PDF
    r"\+91 87179 83153",
    r"sales@nimbleedge\.com",
    r"nimbleedge\.com",
    r"Data for Page No\..*",
]
_patterns_env = os.getenv("DOCQA_BOILERPLATE_PATTERNS")
BOILERPLATE_PATTERNS = (
    [p for p in _patterns_env.split("||") if p] if _patterns_env
    else DEFAULT_BOILERPLATE_PATTERNS
)

# API limits
MAX_QUESTION_CHARS = int(os.getenv("MAX_QUESTION_CHARS", "2000"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "json")  # json | console
