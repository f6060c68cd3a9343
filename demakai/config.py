import os
from dotenv import load_dotenv
from pathlib import Path

# Load environment variables from .env file with explicit path
load_dotenv(dotenv_path=Path(__file__).parent.parent / '.env')

# Storage Configuration
# Sessions, KBLI/KBJI tables and publications share one sqlite file by default.
DB_PATH = os.getenv("DEMAKAI_DB_PATH", "demakai.db")

# Embedding Configuration (Ollama-compatible endpoint)
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "bge-m3")
EMBEDDING_DIMENSION = int(os.getenv("EMBEDDING_DIMENSION", "1024"))
EMBEDDING_MAX_RETRIES = int(os.getenv("EMBEDDING_MAX_RETRIES", "3"))
EMBEDDING_RETRY_BASE_DELAY = float(os.getenv("EMBEDDING_RETRY_BASE_DELAY", "1.0"))
EMBEDDING_TIMEOUT_SECONDS = float(os.getenv("EMBEDDING_TIMEOUT_SECONDS", "30"))

# LLM Configuration
#
# The provider is picked from LLM_BASE_URL: Gemini, OpenAI, Groq, or a local
# Ollama server (default).
LLM_BASE_URL = os.getenv("LLM_BASE_URL", "http://localhost:11434")
LLM_MODEL = os.getenv("LLM_MODEL", "llama3.1:8b")
LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "240"))
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
GROQ_API_KEY = os.getenv("GROQ_API_KEY")

# Comma separated list; GEMINI_API_KEY is used when the list is empty.
GEMINI_API_KEYS = [k.strip() for k in os.getenv("GEMINI_API_KEYS", "").split(",") if k.strip()]
if not GEMINI_API_KEYS and os.getenv("GEMINI_API_KEY"):
    GEMINI_API_KEYS = [os.getenv("GEMINI_API_KEY")]

# WhatsApp Gateway Configuration
WA_API_BASE_URL = os.getenv("WA_API_BASE_URL")
WA_SESSION_ID = os.getenv("WA_SESSION_ID", "demak-bot")
PORT = int(os.getenv("PORT", "3000"))
WEBHOOK_URL = os.getenv("WEBHOOK_URL", f"http://localhost:{PORT}/webhook")

# Outbound message shaping
MAX_MESSAGE_LENGTH = int(os.getenv("MAX_MESSAGE_LENGTH", "4000"))
TYPING_DELAY_SECONDS = float(os.getenv("TYPING_DELAY_SECONDS", "1.0"))

# Rate limiting
MAX_MESSAGES_PER_MINUTE = int(os.getenv("MAX_MESSAGES_PER_MINUTE", "10"))
RATE_LIMIT_MAX_USERS = int(os.getenv("RATE_LIMIT_MAX_USERS", "10000"))

# Session lifecycle
MODE_IDLE_MINUTES = int(os.getenv("MODE_IDLE_MINUTES", "15"))
SESSION_RETENTION_DAYS = int(os.getenv("SESSION_RETENTION_DAYS", "90"))
HISTORY_RETENTION_HOURS = int(os.getenv("HISTORY_RETENTION_HOURS", "24"))
