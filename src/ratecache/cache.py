"""
Read-Through Cache Manager

Answers "rate for (currency, date)" from the cache store, falling back to
the rate provider on a miss. Check and fill happen inside one write
transaction: either a complete entry is committed or nothing is.
"""

import logging
from datetime import date

from pydantic import ValidationError

from ratecache.models import RateRecord, cache_key
from ratecache.providers.base import BaseRateProvider
from ratecache.storage import CacheCorruptionError, CacheStore

logger = logging.getLogger(__name__)


class RateCache:
    """
    Mediates between a rate provider and the on-disk cache.

    Both collaborators are owned by the caller, which opens them once per
    run and closes them when the run ends.
    """

    def __init__(
        self,
        store: CacheStore,
        provider: BaseRateProvider,
        bucket_name: str = "cache"
    ):
        self.store = store
        self.provider = provider
        self.bucket_name = bucket_name

    def get_rate(
        self,
        currency: str,
        on_date: date,
        bypass_cache: bool = False
    ) -> RateRecord:
        """
        Return the rate record for (currency, on_date).

        Args:
            currency: Currency code, case-insensitive
            on_date: Date the rate applies to
            bypass_cache: Skip the cache read, fetch live and overwrite the entry

        Raises:
            RateProviderError: Provider failure, propagated unchanged
            CacheCorruptionError: Stored entry exists but cannot be decoded
            StorageFailureError: Transaction, bucket or commit failure
        """
        key = cache_key(on_date, currency)

        with self.store.begin(writable=True) as tx:
            bucket = tx.create_bucket_if_not_exists(self.bucket_name)

            if not bypass_cache:
                payload = bucket.get(key)
                if payload is not None:
                    logger.debug(f"Cache hit: {key}")
                    return decode_entry(key, payload, self.bucket_name)
                logger.debug(f"Cache miss: {key}")
            else:
                logger.debug(f"Cache bypass: {key}")

            record = self.provider.fetch_rate(currency, on_date)

            bucket.put(key, record.to_bytes())
            tx.commit()
            logger.info(f"Cached {key} from {self.provider.PROVIDER_NAME}")
            return record

    def peek(self, currency: str, on_date: date) -> RateRecord | None:
        """Read the cached record without touching the provider."""
        key = cache_key(on_date, currency)
        with self.store.view() as tx:
            bucket = tx.bucket(self.bucket_name)
            payload = bucket.get(key) if bucket is not None else None
        return decode_entry(key, payload, self.bucket_name) if payload is not None else None


def decode_entry(key: str, payload: bytes, bucket_name: str = "cache") -> RateRecord:
    """Decode a stored entry; undecodable entries are reported, never refetched."""
    try:
        return RateRecord.from_bytes(payload)
    except (ValidationError, ValueError) as e:
        raise CacheCorruptionError(
            f"Cannot decode cache entry '{key}': {e}",
            details={"key": key, "bucket": bucket_name}
        ) from e


def cached_records(store: CacheStore, bucket_name: str = "cache") -> list[RateRecord]:
    """Every record in the bucket, ordered by key."""
    return [
        decode_entry(key, payload, bucket_name)
        for key, payload in store.iter_items(bucket_name)
    ]
