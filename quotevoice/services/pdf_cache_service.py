"""
In-process LRU cache for rendered PDFs.

One PDFCache lives per application (app.extensions['pdf_cache']); it is not
shared between server processes, so each worker may render the same PDF once.
"""

import logging
import threading
import time
from collections import OrderedDict
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, NamedTuple, Optional, Union

from flask import Flask, current_app

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = 10 * 1024 * 1024  # 10 MiB
DEFAULT_TTL = 30 * 60  # 30 minutes

Artifact = Union[str, bytes]


class CacheKey(NamedTuple):
    """All four components are significant; legal content differs by locale."""
    quote_id: Any
    density: str
    locale: str
    content_hash: str


class _CacheEntry(NamedTuple):
    data: Artifact
    timestamp: float
    size: int


class PDFCache:
    """
    Bounded LRU store with TTL expiry.

    Size is approximated as len(data) * 2 bytes. A single artifact larger
    than half of max_size is never stored.
    """

    def __init__(self, max_size: int = DEFAULT_MAX_SIZE, ttl: float = DEFAULT_TTL,
                 clock: Callable[[], float] = time.monotonic):
        self.max_size = max_size
        self.ttl = ttl
        self._clock = clock
        self._entries: "OrderedDict[CacheKey, _CacheEntry]" = OrderedDict()
        self._total_size = 0
        self._lock = threading.Lock()

    @staticmethod
    def _size_of(data: Artifact) -> int:
        return len(data) * 2

    def _delete(self, key: CacheKey) -> None:
        entry = self._entries.pop(key, None)
        if entry is not None:
            self._total_size -= entry.size

    def get(self, key: CacheKey) -> Optional[Artifact]:
        """Return the cached artifact, or None when absent or expired. A hit refreshes recency."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None

            if self._clock() - entry.timestamp > self.ttl:
                self._delete(key)
                logger.debug(f"[PDF_CACHE] EXPIRED: {key}")
                return None

            self._entries.move_to_end(key)
            return entry.data

    def set(self, key: CacheKey, data: Artifact) -> bool:
        """Store an artifact, evicting least recently used entries until it fits."""
        size = self._size_of(data)
        if size > self.max_size / 2:
            logger.info(f"[PDF_CACHE] SKIP oversized artifact for quote {key.quote_id} ({size} bytes)")
            return False

        with self._lock:
            self._delete(key)

            while self._entries and self._total_size + size > self.max_size:
                oldest_key = next(iter(self._entries))
                self._delete(oldest_key)
                logger.debug(f"[PDF_CACHE] EVICT: {oldest_key}")

            self._entries[key] = _CacheEntry(data=data, timestamp=self._clock(), size=size)
            self._total_size += size
            return True

    def has(self, key: CacheKey) -> bool:
        return self.get(key) is not None

    def invalidate_quote(self, quote_id: Any) -> int:
        """Drop every entry of a quote, whatever its density, locale or hash."""
        with self._lock:
            keys = [key for key in self._entries if key.quote_id == quote_id]
            for key in keys:
                self._delete(key)
        if keys:
            logger.info(f"[PDF_CACHE] INVALIDATE: quote {quote_id} ({len(keys)} entries)")
        return len(keys)

    def invalidate_quotes(self, quote_ids: Iterable[Any]) -> int:
        """Drop every entry of several quotes at once."""
        quote_ids = set(quote_ids)
        with self._lock:
            keys = [key for key in self._entries if key.quote_id in quote_ids]
            for key in keys:
                self._delete(key)
        if keys:
            logger.info(f"[PDF_CACHE] INVALIDATE: {len(quote_ids)} quote(s) ({len(keys)} entries)")
        return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._total_size = 0

    def get_stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                'entries': len(self._entries),
                'totalSize': self._total_size,
                'maxSize': self.max_size,
            }


def _to_base36(number: int) -> str:
    alphabet = '0123456789abcdefghijklmnopqrstuvwxyz'
    if number == 0:
        return '0'
    out = []
    while number:
        number, rem = divmod(number, 36)
        out.append(alphabet[rem])
    return ''.join(reversed(out))


def _format_amount(value: Any) -> str:
    if value is None:
        return '0.00'
    return f"{Decimal(str(value)):.2f}"


def generate_content_hash(total: Any, subtotal: Any, tax_amount: Any, client_name: str,
                          items_count: int = 0, notes: Optional[str] = None) -> str:
    """
    Fingerprint of the quote fields that change the rendered PDF.

    Java-style 32-bit String.hashCode over UTF-16 code units of the
    pipe-joined fields, absolute value in base 36. Not a security boundary.
    """
    content = '|'.join([
        _format_amount(total),
        _format_amount(subtotal),
        _format_amount(tax_amount),
        str(items_count or 0),
        (notes or '')[:50],
        client_name or '',
    ])

    return _string_hash(content)


def _string_hash(content: str) -> str:
    encoded = content.encode('utf-16-le')
    hash_value = 0
    for i in range(0, len(encoded), 2):
        code_unit = encoded[i] | (encoded[i + 1] << 8)
        hash_value = (hash_value * 31 + code_unit) & 0xFFFFFFFF
    if hash_value >= 0x80000000:
        hash_value -= 0x100000000
    return _to_base36(abs(hash_value))


def branding_hash(tier: str, branding: Any) -> str:
    """Fingerprint of the tier and resolved branding a PDF was rendered with."""
    return f"{tier}-{_string_hash(repr(branding))}"


def quote_content_hash(quote) -> str:
    """generate_content_hash for a Quote model instance."""
    return generate_content_hash(
        total=quote.total,
        subtotal=quote.subtotal,
        tax_amount=quote.tax_amount,
        client_name=quote.client_name,
        items_count=len(quote.items),
        notes=quote.notes,
    )


def init_pdf_cache(app: Flask) -> PDFCache:
    """Create the application's PDF cache."""
    cache = PDFCache(
        max_size=app.config.get('PDF_CACHE_MAX_BYTES', DEFAULT_MAX_SIZE),
        ttl=app.config.get('PDF_CACHE_TTL_SECONDS', DEFAULT_TTL),
    )
    app.extensions['pdf_cache'] = cache
    return cache


def get_pdf_cache() -> PDFCache:
    """Get the PDF cache of the current application."""
    cache = current_app.extensions.get('pdf_cache')
    if cache is None:
        raise RuntimeError("PDF cache not initialized.")
    return cache
