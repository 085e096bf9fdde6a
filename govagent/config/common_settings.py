import os

from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file


def _env_flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).lower() in ("true", "1", "yes", "on")


# --------------------------------------------------
# LLM Provider Configuration (decision oracle)
# --------------------------------------------------
# Available providers: "openai", "xai"
DEFAULT_PROVIDER = os.environ.get("DEFAULT_LLM_PROVIDER", "openai")

# Provider-specific API keys. An empty key disables the oracle and the
# agent falls back to the default score / canned replies.
OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY")
X_AI_API_KEY = os.environ.get("X_AI_API_KEY")

# Provider-specific model names
OPENAI_DEFAULT_MODEL = os.environ.get("OPENAI_DEFAULT_MODEL", "gpt-4o-mini")
XAI_DEFAULT_MODEL = os.environ.get("XAI_DEFAULT_MODEL", "grok-3-mini")

# --------------------------------------------------
# Chain Configuration
# --------------------------------------------------
CHAIN_RPC_URL = os.environ.get("CHAIN_RPC_URL")
SIGNING_SEED = os.environ.get("SIGNING_SEED")
# SS58 prefix used when rendering the signing address (2 = Kusama, 0 = Polkadot)
CHAIN_SS58_FORMAT = int(os.environ.get("CHAIN_SS58_FORMAT", "2"))

# Deployments that only host deliberation can switch voting off; the
# signing seed and RPC endpoint are then optional.
VOTING_ENABLED = _env_flag("VOTING_ENABLED", "true")

# --------------------------------------------------
# Proposal index (Polkassembly)
# --------------------------------------------------
POLKASSEMBLY_NETWORK = os.environ.get("POLKASSEMBLY_NETWORK", "kusama")
POLKASSEMBLY_BASE_URL = os.environ.get("POLKASSEMBLY_BASE_URL")

# --------------------------------------------------
# Database Configuration
# --------------------------------------------------
DATABASE_URL = os.environ.get("DATABASE_URL")

# --------------------------------------------------
# HTTP Configuration
# --------------------------------------------------
ALLOWED_ORIGINS = os.environ.get("ALLOWED_ORIGINS", "")
