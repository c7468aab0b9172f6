# session_auth/crud/memory_store.py
import threading
import uuid
from datetime import datetime
from typing import Dict, List, Optional

from session_auth.crud.base import FamilyRegistry, RefreshStore
from session_auth.schemas.session import BlacklistEntry, RefreshTokenRecord, TokenFamily


class MemoryRefreshStore(RefreshStore):
    """Backend de referência em memória.

    Cada método roda inteiro sob o lock, sem pontos de suspensão, então é
    seguro tanto entre threads quanto entre corrotinas.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: Dict[str, RefreshTokenRecord] = {}
        self._blacklist: Dict[str, BlacklistEntry] = {}

    async def put(self, record: RefreshTokenRecord) -> None:
        with self._lock:
            self._records[record.token_hash] = record

    async def get(self, token_hash: str) -> Optional[RefreshTokenRecord]:
        with self._lock:
            return self._records.get(token_hash)

    async def delete(self, token_hash: str) -> bool:
        with self._lock:
            return self._records.pop(token_hash, None) is not None

    async def list_by_user(self, user_id: str) -> List[RefreshTokenRecord]:
        with self._lock:
            return [r for r in self._records.values() if r.user_id == user_id]

    async def list_by_family(self, family_id: str) -> List[RefreshTokenRecord]:
        with self._lock:
            return [r for r in self._records.values() if r.family_id == family_id]

    async def consume(self, token_hash: str, now: datetime) -> Optional[RefreshTokenRecord]:
        with self._lock:
            record = self._records.pop(token_hash, None)
            if record is None:
                return None
            self._blacklist[token_hash] = BlacklistEntry(
                token_hash=token_hash, family_id=record.family_id, consumed_at=now
            )
            return record

    async def get_blacklisted(self, token_hash: str) -> Optional[BlacklistEntry]:
        with self._lock:
            return self._blacklist.get(token_hash)

    async def purge_expired(self, now: datetime) -> int:
        with self._lock:
            expired = [h for h, r in self._records.items() if r.is_expired(now)]
            for token_hash in expired:
                del self._records[token_hash]
            return len(expired)

    async def prune_blacklist(self, cutoff: datetime) -> int:
        with self._lock:
            stale = [h for h, e in self._blacklist.items() if e.consumed_at < cutoff]
            for token_hash in stale:
                del self._blacklist[token_hash]
            return len(stale)


class MemoryFamilyRegistry(FamilyRegistry):

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._families: Dict[str, TokenFamily] = {}

    async def create(self, user_id: str, now: datetime) -> TokenFamily:
        family = TokenFamily(
            family_id=str(uuid.uuid4()),
            user_id=user_id,
            created_at=now,
            last_used=now,
        )
        with self._lock:
            self._families[family.family_id] = family
        return family.model_copy()

    async def get(self, family_id: str) -> Optional[TokenFamily]:
        with self._lock:
            family = self._families.get(family_id)
            # Cópia: quem lê não pode mutar o estado compartilhado
            return family.model_copy() if family else None

    async def mark_compromised(self, family_id: str) -> bool:
        with self._lock:
            family = self._families.get(family_id)
            if family is None:
                return False
            family.compromised = True
            return True

    async def touch(self, family_id: str, now: datetime) -> Optional[TokenFamily]:
        with self._lock:
            family = self._families.get(family_id)
            if family is None:
                return None
            family.last_used = now
            family.rotation_count += 1
            return family.model_copy()

    async def mark_compromised_for_user(self, user_id: str) -> int:
        with self._lock:
            families = [f for f in self._families.values() if f.user_id == user_id]
            for family in families:
                family.compromised = True
            return len(families)

    async def delete_for_user(self, user_id: str, now: datetime) -> int:
        with self._lock:
            ids = [fid for fid, f in self._families.items() if f.user_id == user_id]
            for fid in ids:
                del self._families[fid]
            return len(ids)

    async def purge_inactive(self, cutoff: datetime) -> int:
        with self._lock:
            ids = [fid for fid, f in self._families.items() if f.last_used < cutoff]
            for fid in ids:
                del self._families[fid]
            return len(ids)
