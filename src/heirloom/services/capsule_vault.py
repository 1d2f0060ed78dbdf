"""
Capsule Vault

Encryption pipeline for written content records. Content flagged for
encryption is sealed before it reaches the record store; if sealing fails the
record is not stored at all.
"""

import asyncio
import logging
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from functools import partial
from typing import Any, Dict, List, Optional

from heirloom.models.app_config import FeatureFlags
from heirloom.models.capsule import ENCRYPTED_SENTINEL, CapsuleRecord, EncryptedBlob
from heirloom.models.error import ErrorSeverity, StorageError, ValidationError
from heirloom.services.encrypted_store import DecryptionFailure, DecryptionResult, EncryptedStore
from heirloom.services.record_store import CAPSULES, JsonRecordStore


class CapsuleVault:
    """
    Saves and reads CapsuleRecords through the EncryptedStore.

    Attributes:
        store: Persistence collaborator
        encrypted_store: Content encryption
        features: enable_encryption switch
    """

    def __init__(self, store: JsonRecordStore, encrypted_store: EncryptedStore,
                 features: Optional[FeatureFlags] = None):
        self.store = store
        self.encrypted_store = encrypted_store
        self.features = features or FeatureFlags()
        self.logger = logging.getLogger(self.__class__.__name__)
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="CapsuleCrypto")

    async def _in_executor(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, partial(func, *args))

    async def _seal(self, capsule: CapsuleRecord, passphrase: Optional[str]) -> CapsuleRecord:
        if capsule.content == ENCRYPTED_SENTINEL and capsule.encrypted_content:
            return capsule
        if not capsule.content:
            return capsule

        try:
            blob = await self._in_executor(self.encrypted_store.encrypt, capsule.content, passphrase)
        except ValidationError:
            raise
        except Exception as e:
            raise StorageError(
                severity=ErrorSeverity.ERROR,
                code="ENCRYPTION_FAILED",
                user_message="Your content could not be encrypted",
                technical_details=str(e),
                suggested_action="Nothing was saved. Please try again."
            ) from e

        return replace(capsule, encrypted_content=blob.to_json(), content=ENCRYPTED_SENTINEL)

    async def save(self, capsule: CapsuleRecord, passphrase: Optional[str] = None) -> CapsuleRecord:
        """
        Persist a capsule, sealing its content first when encryption is requested.

        Args:
            capsule: Record to store; not modified
            passphrase: Optional passphrase for key derivation

        Returns:
            CapsuleRecord: The stored form, with ``record_id`` assigned

        Raises:
            ValidationError: Missing title, or a passphrase is required
            StorageError: Encryption or the write failed; nothing was stored
        """
        if not capsule.title or not capsule.title.strip():
            raise ValidationError("Capsule title is required", field="title")

        record = replace(capsule, record_id=capsule.record_id or self.store.new_id())
        if not record.word_count and record.content and record.content != ENCRYPTED_SENTINEL:
            record.word_count = len(record.content.split())

        if record.is_encrypted:
            if self.features.enable_encryption:
                record = await self._seal(record, passphrase)
            else:
                self.logger.warning(f"Encryption disabled; storing capsule {record.record_id} unencrypted")
                record.is_encrypted = False

        await self.store.put(CAPSULES, record.record_id, record.to_dict())
        self.logger.info(f"Saved capsule {record.record_id} (sealed={record.is_sealed})")
        return record

    async def get(self, record_id: str) -> Optional[CapsuleRecord]:
        data = await self.store.get(CAPSULES, record_id)
        return CapsuleRecord.from_dict(data) if data else None

    async def list(self) -> List[CapsuleRecord]:
        return [CapsuleRecord.from_dict(data) for data in await self.store.list(CAPSULES)]

    async def delete(self, record_id: str) -> bool:
        return await self.store.delete(CAPSULES, record_id)

    async def read_content_result(self, capsule: CapsuleRecord, passphrase: Optional[str] = None) -> DecryptionResult:
        """Decrypt a capsule's content, reporting failures instead of raising."""
        if not capsule.is_encrypted or not capsule.encrypted_content:
            return DecryptionResult(plaintext=capsule.content)

        try:
            blob = EncryptedBlob.from_json(capsule.encrypted_content)
        except (ValueError, KeyError, TypeError) as e:
            self.logger.warning(f"Capsule {capsule.record_id} has a malformed encrypted payload: {e}")
            return DecryptionResult(failure=DecryptionFailure.MALFORMED)

        return await self._in_executor(self.encrypted_store.decrypt_blob, blob, passphrase)

    async def read_content(self, capsule: CapsuleRecord, passphrase: Optional[str] = None) -> str:
        """
        Plaintext of a capsule.

        Returns:
            str: Content, or a decryption sentinel if it cannot be recovered
        """
        return (await self.read_content_result(capsule, passphrase)).text

    async def get_capsule_stats(self) -> Dict[str, Any]:
        """Counts of stored capsules by status, origin and encryption."""
        capsules = await self.list()
        return {
            "total": len(capsules),
            "by_status": dict(Counter(c.status.value for c in capsules)),
            "ai_generated": sum(1 for c in capsules if c.is_ai_generated),
            "with_voice": sum(1 for c in capsules if c.voice_model_id),
            "encrypted": sum(1 for c in capsules if c.is_sealed),
        }

    def close(self) -> None:
        self._executor.shutdown(wait=True)
