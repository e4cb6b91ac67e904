import hashlib
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from eth_account import Account
from eth_account.messages import encode_defunct
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from evote import config

bearer_scheme = HTTPBearer(auto_error=False)


@lru_cache(maxsize=1)
def get_fernet() -> Fernet:
    return Fernet(config.load_encryption_key())


# --- Wallet address helpers ---

def normalize_address(address: str) -> str:
    return address.strip().lower()


def encrypt_address(address: str) -> str:
    return get_fernet().encrypt(normalize_address(address).encode()).decode("utf-8")


def decrypt_address(encrypted_address: str) -> str:
    """Raises ValueError when the ciphertext was not produced with our key."""
    try:
        return get_fernet().decrypt(encrypted_address.encode()).decode("utf-8")
    except (InvalidToken, ValueError) as e:
        raise ValueError("could not decrypt wallet address") from e


def hash_address(address: str) -> str:
    return hashlib.sha256(normalize_address(address).encode()).hexdigest()


def mask(value: str) -> str:
    if len(value) <= 10:
        return value
    return f"{value[:6]}...{value[-4:]}"


def is_admin(address: Optional[str]) -> bool:
    if not address or not config.ADMIN_ADDRESS:
        return False
    return normalize_address(address) == normalize_address(config.ADMIN_ADDRESS)


# --- Admin session ---

def recover_signer(message: str, signature: str) -> str:
    return Account.recover_message(encode_defunct(text=message), signature=signature)


def login_message(issued_at: Optional[datetime] = None) -> str:
    issued_at = issued_at or datetime.now(timezone.utc)
    return f"{config.ADMIN_LOGIN_PREFIX} at {issued_at.isoformat()}"


def is_fresh_login_message(message: str, now: Optional[datetime] = None) -> bool:
    """True for a login message issued within the last ADMIN_LOGIN_MAX_AGE_SECONDS."""
    prefix = f"{config.ADMIN_LOGIN_PREFIX} at "
    if not message.startswith(prefix):
        return False
    try:
        issued_at = datetime.fromisoformat(message[len(prefix):].strip().replace("Z", "+00:00"))
    except ValueError:
        return False
    if issued_at.tzinfo is None:
        issued_at = issued_at.replace(tzinfo=timezone.utc)
    age = ((now or datetime.now(timezone.utc)) - issued_at).total_seconds()
    # Allow a little clock skew on the signing side
    return -60 <= age <= config.ADMIN_LOGIN_MAX_AGE_SECONDS


def create_access_token(data: dict, expires_delta: int = None):
    to_encode = data.copy()
    minutes = expires_delta if expires_delta is not None else config.ACCESS_TOKEN_EXPIRE_MINUTES
    expire = datetime.now(timezone.utc) + timedelta(minutes=minutes)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)


def decode_access_token(token: str) -> dict:
    return jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])


def require_admin(credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme)) -> str:
    """FastAPI dependency returning the admin wallet address behind the bearer token."""
    if credentials is None:
        raise HTTPException(status_code=401, detail="Missing admin token")
    try:
        payload = decode_access_token(credentials.credentials)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired admin token")
    address = payload.get("sub")
    if not is_admin(address):
        raise HTTPException(status_code=403, detail="Not an admin address")
    return address
