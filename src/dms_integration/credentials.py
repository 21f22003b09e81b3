"""Loads the Dead Man's Snitch API key for an intent.

Each intent references a secret (``dmsAPIKeySecretRef``) holding the API
key under a well-known data key. The key is resolved afresh on every
pass so a rotated secret takes effect without a restart.
"""

from __future__ import annotations

import base64
import binascii
from typing import Protocol, runtime_checkable

from dms_integration.errors import CredentialError, NotFoundError
from dms_integration.models import IntentRecord
from dms_integration.store.base import SECRET, ObjectStore

DEFAULT_API_KEY_SECRET_KEY = "deadmanssnitch-api-key"


@runtime_checkable
class CredentialResolver(Protocol):
    """Protocol for API key resolvers."""

    def resolve(self, intent: IntentRecord) -> str:
        """Return the API key for *intent*.

        Raises:
            CredentialError: If the key cannot be resolved.
        """
        ...


class SecretCredentialResolver:
    """Reads the API key from the secret referenced by the intent."""

    def __init__(
        self,
        store: ObjectStore,
        key: str = DEFAULT_API_KEY_SECRET_KEY,
    ) -> None:
        self._store = store
        self._key = key

    def resolve(self, intent: IntentRecord) -> str:
        ref = intent.api_key_secret_ref
        try:
            secret = self._store.get(SECRET, ref.namespace, ref.name)
        except NotFoundError:
            raise CredentialError(
                f"API key secret {ref.namespace}/{ref.name} not found"
            ) from None
        return load_secret_data(secret, self._key)


def load_secret_data(secret: dict, key: str) -> str:
    """Return the decoded value of *key* from a secret's data.

    ``stringData`` is consulted when ``data`` lacks the key.
    """
    meta = secret.get("metadata") or {}
    where = f"{meta.get('namespace', '')}/{meta.get('name', '')}"

    encoded = (secret.get("data") or {}).get(key)
    if encoded is not None:
        try:
            value = base64.b64decode(encoded, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as exc:
            raise CredentialError(f"Key {key!r} in secret {where} is not valid base64") from exc
    else:
        value = (secret.get("stringData") or {}).get(key)

    if not value:
        raise CredentialError(f"Secret {where} did not contain key {key!r}")
    return value
