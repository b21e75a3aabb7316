import logging
import os

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# Credentials directory (opaque auth state shared with the gateway)
AUTH_DIR = os.getenv("WAGPT_AUTH_DIR", "auth")

# WhatsApp gateway
GATEWAY_URL = os.getenv("WAGPT_GATEWAY_URL", "ws://127.0.0.1:8765/ws")
CONNECT_TIMEOUT_SECONDS = float(os.getenv("WAGPT_CONNECT_TIMEOUT", "20"))
SYNC_FULL_HISTORY = _env_bool("WAGPT_SYNC_FULL_HISTORY", "true")

# OpenAI configuration
MODEL = os.getenv("WAGPT_MODEL", "gpt-3.5-turbo")
OPENAI_MAX_RETRIES = int(os.getenv("OPENAI_MAX_RETRIES", "0"))
OPENAI_TIMEOUT_SECONDS = (
    float(os.environ["WAGPT_OPENAI_TIMEOUT"])
    if os.getenv("WAGPT_OPENAI_TIMEOUT")
    else None
)

# Fixed replies
NO_RESPONSE_TEXT = "I couldn't generate a response."
FALLBACK_TEXT = "Sorry, I am unable to process your request."

# Relay behaviour
RECONNECT_DELAY_SECONDS = float(os.getenv("WAGPT_RECONNECT_DELAY", "5"))
BATCH_POLICIES = ("first", "last", "all")
BATCH_POLICY = os.getenv("WAGPT_BATCH_POLICY", "first")

# Process exit codes
EXIT_MISSING_API_KEY = 1
EXIT_LOGGED_OUT = 2

# Logging setup
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s - %(message)s",
)
logger = logging.getLogger("wagpt")
