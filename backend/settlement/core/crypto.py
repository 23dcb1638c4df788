"""Field encryption for recipient payout account references.

Ciphertext is written with the active key; older keys listed in
``PAYOUT_ACCOUNT_PREVIOUS_KEYS`` still decrypt rows written before a rotation.
"""

from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken, MultiFernet

from settlement.config import settings


@lru_cache(maxsize=1)
def _keyring(active_key: str, previous_keys: str) -> MultiFernet:
    keys = [active_key] + [k.strip() for k in previous_keys.split(",") if k.strip()]
    return MultiFernet([Fernet(k.encode("utf-8")) for k in keys])


def _get_keyring() -> MultiFernet:
    if not settings.PAYOUT_ACCOUNT_ENCRYPTION_KEY:
        raise RuntimeError("PAYOUT_ACCOUNT_ENCRYPTION_KEY is not set")
    return _keyring(settings.PAYOUT_ACCOUNT_ENCRYPTION_KEY, settings.PAYOUT_ACCOUNT_PREVIOUS_KEYS)


def encrypt_account_ref(account_ref: str) -> str:
    return _get_keyring().encrypt(account_ref.encode("utf-8")).decode("utf-8")


def decrypt_account_ref(ciphertext: str) -> str:
    try:
        return _get_keyring().decrypt(ciphertext.encode("utf-8")).decode("utf-8")
    except InvalidToken as e:
        raise RuntimeError("Recipient account reference cannot be decrypted with the configured keys") from e


def rotate_account_ref(ciphertext: str) -> str:
    """Re-encrypt a stored value under the active key."""
    return _get_keyring().rotate(ciphertext.encode("utf-8")).decode("utf-8")
