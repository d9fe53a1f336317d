# krishi/core/cache.py - TTL cache with LRU cap and optional diskcache write-through
import asyncio
import hashlib
import logging
import os
import pickle
import re
import sys
import threading
import time
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any, Dict, List, Optional

import diskcache
import lz4.frame
import msgpack

from krishi.models.advisory import AdvisoryResponse, CacheEntry, Location, RetrievedRecord

logger = logging.getLogger(__name__)

# Disk blob header: serializer byte + compression byte
_MSGPACK = b"m"
_PICKLE = b"p"
_RAW = b"r"
_LZ4 = b"z"
_COMPRESS_ABOVE_BYTES = 1024


class TTLCache:
    """Memory cache with per-entry expiry, an LRU size cap and optional disk persistence.

    Reads of expired keys are misses and drop the entry. Capacity eviction is
    opportunistic: it kicks in once the store passes ``max_entries`` plus a small
    slack, or whenever ``cleanup()`` runs.
    """

    def __init__(
        self,
        name: str,
        max_entries: int = 1000,
        default_ttl: int = 3600,
        disk_dir: Optional[str] = None,
        disk_size_mb: int = 100,
    ):
        self.name = name
        self.max_entries = max_entries
        self.default_ttl = default_ttl
        self._slack = max(1, max_entries // 10)
        self._store: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.RLock()

        self.disk_cache: Optional[diskcache.Cache] = None
        self._thread_pool: Optional[ThreadPoolExecutor] = None
        if disk_dir:
            path = os.path.join(disk_dir, name)
            os.makedirs(path, exist_ok=True)
            self.disk_cache = diskcache.Cache(
                path,
                size_limit=disk_size_mb * 1024 * 1024,
                eviction_policy='least-recently-used',
            )
            self._thread_pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix=f"{name}_cache")

        self.hits = 0
        self.misses = 0
        self.evictions = 0
        self.read_errors = 0
        self.write_errors = 0

        logger.info(
            f"✅ Initialized TTL cache '{name}' (max {max_entries} entries, "
            f"disk: {'on' if self.disk_cache is not None else 'off'})"
        )

    # --- serialization ---

    @staticmethod
    def _serialize_value(value: Any) -> bytes:
        """msgpack for plain data, pickle otherwise; lz4 above 1KB."""
        try:
            body = msgpack.packb(value, use_bin_type=True)
            fmt = _MSGPACK
        except TypeError:
            body = pickle.dumps(value, protocol=pickle.HIGHEST_PROTOCOL)
            fmt = _PICKLE

        if len(body) > _COMPRESS_ABOVE_BYTES:
            return fmt + _LZ4 + lz4.frame.compress(body)
        return fmt + _RAW + body

    @staticmethod
    def _deserialize_value(data: bytes) -> Any:
        fmt, compression, body = data[:1], data[1:2], data[2:]
        if compression == _LZ4:
            body = lz4.frame.decompress(body)
        if fmt == _MSGPACK:
            return msgpack.unpackb(body, raw=False)
        return pickle.loads(body)

    def _get_item_size(self, value: Any) -> int:
        try:
            return len(msgpack.packb(value, use_bin_type=True))
        except TypeError:
            return sys.getsizeof(value)

    # --- disk helpers (run in the thread pool) ---

    async def _run_disk(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._thread_pool, func, *args)

    def _get_from_disk(self, key: str) -> Optional[CacheEntry]:
        blob = self.disk_cache.get(key)
        if blob is None:
            return None
        data = self._deserialize_value(blob)
        return CacheEntry(**data)

    def _set_to_disk(self, entry: CacheEntry, ttl: float):
        blob = self._serialize_value({
            "key": entry.key,
            "value": entry.value,
            "created_at": entry.created_at,
            "expires_at": entry.expires_at,
        })
        self.disk_cache.set(entry.key, blob, expire=ttl)

    def _delete_from_disk(self, key: str):
        self.disk_cache.delete(key)

    def _disk_entries(self, skip: set) -> List[CacheEntry]:
        entries = []
        for key in list(self.disk_cache.iterkeys()):
            if key in skip:
                continue
            try:
                entry = self._get_from_disk(key)
            except Exception as e:
                logger.warning(f"Skipping unreadable disk entry '{key}': {e}")
                continue
            if entry is not None:
                entries.append(entry)
        return entries

    # --- memory helpers ---

    def _put(self, entry: CacheEntry):
        with self._lock:
            self._store.pop(entry.key, None)
            self._store[entry.key] = entry
            if len(self._store) > self.max_entries + self._slack:
                self._evict_overflow()

    def _evict_overflow(self) -> int:
        evicted = 0
        with self._lock:
            while len(self._store) > self.max_entries:
                self._store.popitem(last=False)
                evicted += 1
            self.evictions += evicted
        return evicted

    # --- public API ---

    async def get_entry(self, key: str) -> Optional[CacheEntry]:
        now = time.time()
        expired = False

        with self._lock:
            entry = self._store.get(key)
            if entry is not None:
                if entry.is_expired(now):
                    del self._store[key]
                    expired = True
                else:
                    self._store.move_to_end(key)
                    self.hits += 1
                    return entry

        if self.disk_cache is None:
            self.misses += 1
            return None

        try:
            if expired:
                await self._run_disk(self._delete_from_disk, key)
                self.misses += 1
                return None
            entry = await self._run_disk(self._get_from_disk, key)
        except Exception as e:
            logger.warning(f"Disk cache read error for '{key}': {e}")
            self.read_errors += 1
            entry = None

        if entry is None or entry.is_expired(now):
            self.misses += 1
            return None

        # Promote to memory
        self._put(entry)
        self.hits += 1
        return entry

    async def get(self, key: str) -> Optional[Any]:
        entry = await self.get_entry(key)
        return entry.value if entry is not None else None

    async def set(self, key: str, value: Any, ttl: Optional[float] = None):
        """Store or replace ``key``; value and TTL change together."""
        ttl = self.default_ttl if ttl is None else ttl
        now = time.time()
        entry = CacheEntry(key=key, value=value, created_at=now, expires_at=now + ttl)
        self._put(entry)

        if self.disk_cache is not None:
            try:
                await self._run_disk(self._set_to_disk, entry, ttl)
            except Exception as e:
                logger.error(f"Disk cache write error for '{key}': {e}")
                self.write_errors += 1

    async def entries(self) -> List[CacheEntry]:
        """Snapshot of every live entry, memory first, then disk-only ones."""
        now = time.time()
        with self._lock:
            live = [e for e in self._store.values() if not e.is_expired(now)]
        if self.disk_cache is not None:
            seen = {e.key for e in live}
            try:
                disk_only = await self._run_disk(self._disk_entries, seen)
            except Exception as e:
                logger.warning(f"Disk cache scan failed: {e}")
                disk_only = []
            live.extend(e for e in disk_only if not e.is_expired(now))
        return live

    async def cleanup(self) -> int:
        """Drop expired entries and enforce the size cap. Returns the number removed."""
        now = time.time()
        with self._lock:
            expired_keys = [k for k, e in self._store.items() if e.is_expired(now)]
            for key in expired_keys:
                del self._store[key]
            removed = len(expired_keys) + self._evict_overflow()

        if self.disk_cache is not None:
            try:
                removed_on_disk = await self._run_disk(self.disk_cache.expire)
                logger.debug(f"Expired {removed_on_disk} disk entries in '{self.name}'")
            except Exception as e:
                logger.warning(f"Disk cache expire failed: {e}")

        if removed:
            logger.info(f"Evicted {removed} entries from cache '{self.name}'")
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def clear(self):
        with self._lock:
            self._store.clear()
        if self.disk_cache is not None:
            self.disk_cache.clear()
        self.hits = 0
        self.misses = 0
        self.evictions = 0
        self.read_errors = 0
        self.write_errors = 0
        logger.info(f"Cache '{self.name}' cleared")

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            entries = list(self._store.values())
            count = len(entries)
            approx_size = sum(self._get_item_size(e.value) for e in entries)

        created = [e.created_at for e in entries]
        total_requests = self.hits + self.misses
        stats = {
            "count": count,
            "oldest": datetime.fromtimestamp(min(created)).isoformat() if created else None,
            "newest": datetime.fromtimestamp(max(created)).isoformat() if created else None,
            "approx_size_bytes": approx_size,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "hit_rate": round(self.hits / total_requests * 100, 1) if total_requests else 0.0,
            "errors": {"read_errors": self.read_errors, "write_errors": self.write_errors},
        }
        if self.disk_cache is not None:
            try:
                stats["disk"] = {
                    "entries": len(self.disk_cache),
                    "size_mb": round(self.disk_cache.volume() / 1024 / 1024, 2),
                }
            except Exception as e:
                stats["disk"] = {"error": str(e)}
        return stats

    async def close(self):
        try:
            if self._thread_pool is not None:
                self._thread_pool.shutdown(wait=True)
            if self.disk_cache is not None:
                self.disk_cache.close()
        except Exception as e:
            logger.error(f"Cache close error for '{self.name}': {e}")


def normalize_query(text: str) -> str:
    text = re.sub(r"[^\w\s]", " ", text.lower())
    return re.sub(r"\s+", " ", text).strip()


def word_overlap(query: str, other: str) -> float:
    """Fraction of the query's words that also appear in ``other``."""
    query_words = set(normalize_query(query).split())
    other_words = set(normalize_query(other).split())
    if not query_words:
        return 0.0
    return len(query_words & other_words) / len(query_words)


class AdvisoryCache:
    """Dataset and response namespaces over two TTL caches."""

    def __init__(
        self,
        datasets: TTLCache,
        responses: TTLCache,
        category_ttls: Dict[str, int],
        response_ttl: int,
    ):
        self.datasets = datasets
        self.responses = responses
        self.category_ttls = category_ttls
        self.response_ttl = response_ttl

    @classmethod
    def create(cls, settings) -> "AdvisoryCache":
        disk_dir = settings.CACHE_DIR if settings.USE_DISK_CACHE else None
        disk_mb = max(1, settings.CACHE_SIZE_MB // 2)
        return cls(
            datasets=TTLCache(
                "datasets",
                max_entries=settings.DATASET_CACHE_MAX_ENTRIES,
                default_ttl=settings.ADVISORY_TTL_SECONDS,
                disk_dir=disk_dir,
                disk_size_mb=disk_mb,
            ),
            responses=TTLCache(
                "responses",
                max_entries=settings.RESPONSE_CACHE_MAX_ENTRIES,
                default_ttl=settings.RESPONSE_CACHE_TTL_SECONDS,
                disk_dir=disk_dir,
                disk_size_mb=disk_mb,
            ),
            category_ttls=settings.category_ttls(),
            response_ttl=settings.RESPONSE_CACHE_TTL_SECONDS,
        )

    # --- keys ---

    @staticmethod
    def response_key(query: str, language: str) -> str:
        raw = f"{normalize_query(query)}|{language}"
        return hashlib.md5(raw.encode("utf-8")).hexdigest()

    @staticmethod
    def dataset_key(category: str, location: Optional[Location], crop: Optional[str] = None) -> str:
        if location is not None:
            place = "/".join(p.lower() for p in (location.state, location.district, location.pincode) if p)
        else:
            place = "general"
        key = f"{category}:{place or 'general'}"
        return f"{key}:{crop.lower()}" if crop else key

    # --- datasets ---

    async def get_dataset(
        self, category: str, location: Optional[Location], crop: Optional[str] = None
    ) -> Optional[List[RetrievedRecord]]:
        value = await self.datasets.get(self.dataset_key(category, location, crop))
        if value is None:
            return None
        return [RetrievedRecord.model_validate(item) for item in value]

    async def set_dataset(
        self,
        category: str,
        location: Optional[Location],
        crop: Optional[str],
        records: List[RetrievedRecord],
    ):
        await self.datasets.set(
            self.dataset_key(category, location, crop),
            [r.model_dump(mode="json") for r in records],
            ttl=self.category_ttls.get(category, self.datasets.default_ttl),
        )

    # --- responses ---

    async def get_response(self, query: str, language: str) -> Optional[AdvisoryResponse]:
        value = await self.responses.get(self.response_key(query, language))
        if value is None:
            return None
        return AdvisoryResponse.model_validate(value["response"])

    async def set_response(self, query: str, language: str, response: AdvisoryResponse):
        await self.responses.set(
            self.response_key(query, language),
            {
                "query": normalize_query(query),
                "language": language,
                "response": response.model_dump(mode="json"),
            },
            ttl=self.response_ttl,
        )

    async def find_similar_response(
        self, query: str, language: str, threshold: float = 0.6
    ) -> Optional[AdvisoryResponse]:
        """Best cached response whose query shares at least ``threshold`` of the words."""
        best, best_overlap = None, 0.0
        for entry in await self.responses.entries():
            value = entry.value
            if value.get("language") != language:
                continue
            overlap = word_overlap(query, value.get("query", ""))
            if overlap >= threshold and overlap > best_overlap:
                best, best_overlap = value, overlap

        if best is None:
            return None
        logger.info(f"Found similar cached response (overlap {best_overlap:.2f})")
        return AdvisoryResponse.model_validate(best["response"])

    # --- housekeeping ---

    async def cleanup(self) -> int:
        return await self.datasets.cleanup() + await self.responses.cleanup()

    def clear(self):
        self.datasets.clear()
        self.responses.clear()

    def get_stats(self) -> Dict[str, Any]:
        return {"datasets": self.datasets.get_stats(), "responses": self.responses.get_stats()}

    async def close(self):
        await self.datasets.close()
        await self.responses.close()
