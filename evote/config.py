# evote/config.py
# Central place for environment settings and constants
import os

from cryptography.fernet import Fernet
from dotenv import load_dotenv

load_dotenv()

# --- Database ---
MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017")
MONGO_DB = os.getenv("MONGO_DB", "e-voting")
VOTERS_COLLECTION_NAME = "voters"
ELECTIONS_COLLECTION_NAME = "elections"
VOTES_COLLECTION_NAME = "votes"
BLOCKCHAIN_VOTES_COLLECTION_NAME = "blockchain_votes"

# --- Chain ---
# Comma separated, tried in order until one answers
RPC_URLS = [u.strip() for u in os.getenv("EVOTE_RPC_URLS", "http://127.0.0.1:8545").split(",") if u.strip()]
FACTORY_ADDRESS = os.getenv("FACTORY_ADDRESS", "0x05eC535853BAaDC229F90B0a92f85c189168B1AA")
ADMIN_ADDRESS = os.getenv("ADMIN_ADDRESS", "")
ADMIN_PRIVATE_KEY = os.getenv("ADMIN_PRIVATE_KEY", "")
RECEIPT_TIMEOUT = int(os.getenv("RECEIPT_TIMEOUT", "30"))
GAS_AMOUNT_ETH = os.getenv("GAS_AMOUNT_ETH", "0.001")
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# --- Security & JWT ---
# In production, use secure, environment-variable-based secrets
SECRET_KEY = os.getenv("SECRET_KEY", "a_very_secret_key_for_dev_only")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))
# Admins sign "<prefix> at <ISO-8601 UTC timestamp>"
ADMIN_LOGIN_PREFIX = "Sign in to E-Voting admin"
ADMIN_LOGIN_MAX_AGE_SECONDS = int(os.getenv("ADMIN_LOGIN_MAX_AGE_SECONDS", "300"))

# --- Wallet address encryption key ---
# In production: use secure key management (Vault/KMS) and never hardcode keys.
KEY_FILE = os.getenv("KEY_FILE", "data/secret.key")


def load_encryption_key() -> bytes:
    env_key = os.getenv("ENCRYPTION_KEY")
    if env_key:
        return env_key.encode()
    key_dir = os.path.dirname(KEY_FILE)
    if key_dir:
        os.makedirs(key_dir, exist_ok=True)
    if not os.path.exists(KEY_FILE):
        key = Fernet.generate_key()
        with open(KEY_FILE, "wb") as kf:
            kf.write(key)
        return key
    with open(KEY_FILE, "rb") as kf:
        return kf.read().strip()


# --- Misc ---
ELECTION_DEFAULT_DAYS = 7
ENABLE_SEED = os.getenv("EVOTE_ENABLE_SEED", "false").lower() in ("1", "true", "yes")
CORS_ORIGINS = [
    o.strip()
    for o in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")
    if o.strip()
]
