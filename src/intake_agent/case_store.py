"""Persistence for finalized intake cases."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import redis
from redis import Redis
from redis.exceptions import RedisError, ResponseError

from .errors import PersistenceError
from .models import CaseRecord

try:  # pragma: no cover - optional dependency path
    from redis.commands.json.path import Path as RedisJsonPath
except ImportError:  # pragma: no cover - fallback when RedisJSON missing
    RedisJsonPath = None

logger = logging.getLogger(__name__)

CASE_KEY_PREFIX = "case:"
CASE_INDEX_KEY = "cases:index"
IDEMPOTENCY_INDEX_KEY = "cases:idempotency"


class CaseRepository:
    """Writes each case once to a JSONL archive and mirrors it into Redis.

    When a Redis URL is configured, Redis is the source of truth for key
    uniqueness and lookups; the archive is an append-only audit copy.
    """

    def __init__(
        self,
        archive_path: Path,
        redis_url: Optional[str] = None,
        *,
        client: Optional[Redis] = None,
    ) -> None:
        self._archive_path = archive_path
        self._archive_path.parent.mkdir(parents=True, exist_ok=True)
        self._redis_url = redis_url
        self._redis: Optional[Redis] = client
        self._json_supported = RedisJsonPath is not None

    def _get_redis(self) -> Optional[Redis]:
        if self._redis is not None:
            return self._redis
        if not self._redis_url:
            return None
        try:
            self._redis = redis.from_url(  # type: ignore[call-overload]
                self._redis_url,
                decode_responses=True,
            )
        except RedisError as exc:
            raise PersistenceError(f"Redis connection failed: {exc}") from exc
        return self._redis

    def create(self, record: CaseRecord) -> bool:
        """Store ``record`` under its case number if the key is still free.

        Returns ``False`` when another case already owns the number. The
        record's ``timestamp`` is assigned here, at write time.
        """

        record.timestamp = datetime.now(timezone.utc)
        document = record.to_document()
        client = self._get_redis()
        if client is not None:
            if not self._redis_create(client, document):
                return False
        elif self._archive_contains(record.case_number):
            return False
        self._append_archive(document)
        logger.info("Stored case %s", record.case_number)
        return True

    def get(self, case_number: str) -> Optional[CaseRecord]:
        client = self._get_redis()
        if client is not None:
            document = self._redis_read(client, f"{CASE_KEY_PREFIX}{case_number}")
            return CaseRecord.from_document(document) if document else None
        found: Optional[Dict[str, Any]] = None
        for document in self._iter_archive():
            if document.get("caseNumber") == case_number:
                found = document
        return CaseRecord.from_document(found) if found else None

    def find_by_idempotency_key(self, key: str) -> Optional[CaseRecord]:
        client = self._get_redis()
        if client is not None:
            try:
                case_number = client.hget(IDEMPOTENCY_INDEX_KEY, key)
            except RedisError as exc:
                raise PersistenceError(f"Redis lookup failed: {exc}") from exc
            return self.get(str(case_number)) if case_number else None
        for document in self._iter_archive():
            if document.get("idempotencyKey") == key:
                return CaseRecord.from_document(document)
        return None

    def list(self, limit: int = 10) -> List[CaseRecord]:
        """Return the most recent cases, newest first."""

        client = self._get_redis()
        if client is not None:
            try:
                case_numbers = client.zrevrange(CASE_INDEX_KEY, 0, limit - 1)
            except RedisError as exc:
                raise PersistenceError(f"Redis lookup failed: {exc}") from exc
            records = [self.get(str(number)) for number in case_numbers]
            return [record for record in records if record is not None]
        ordered = sorted(
            enumerate(self._iter_archive()),
            key=lambda item: (item[1].get("timestamp") or "", item[0]),
            reverse=True,
        )
        return [CaseRecord.from_document(item) for _, item in ordered[:limit]]

    @property
    def archive_path(self) -> Path:
        """Return the filesystem path for the JSONL archive."""

        return self._archive_path

    def _redis_create(self, client: Redis, document: Dict[str, Any]) -> bool:
        case_number = document["caseNumber"]
        key = f"{CASE_KEY_PREFIX}{case_number}"
        try:
            created = self._redis_set_nx(client, key, document)
            if not created:
                return False
            client.zadd(
                CASE_INDEX_KEY,
                {case_number: datetime.fromisoformat(document["timestamp"]).timestamp()},
            )
            idempotency_key = document.get("idempotencyKey")
            if idempotency_key:
                client.hset(  # type: ignore[call-overload]
                    IDEMPOTENCY_INDEX_KEY,
                    idempotency_key,
                    case_number,
                )
        except RedisError as exc:
            raise PersistenceError(
                f"Redis persistence failed for {key}: {exc}"
            ) from exc
        return True

    def _redis_set_nx(
        self,
        client: Redis,
        key: str,
        document: Dict[str, Any],
    ) -> bool:
        if self._json_supported and RedisJsonPath is not None:
            try:
                return bool(
                    client.json().set(
                        key,
                        RedisJsonPath.root_path(),
                        document,
                        nx=True,
                    )
                )
            except ResponseError as exc:
                if "unknown command" not in str(exc).lower():
                    raise
                logger.info("RedisJSON unavailable; storing cases as strings.")
                self._json_supported = False
        blob = json.dumps(document, ensure_ascii=False)
        return bool(client.set(key, blob, nx=True))

    def _redis_read(self, client: Redis, key: str) -> Optional[Dict[str, Any]]:
        try:
            if self._json_supported:
                try:
                    value = client.json().get(key)
                    return value if isinstance(value, dict) else None
                except ResponseError as exc:
                    message = str(exc).lower()
                    if "unknown command" in message:
                        self._json_supported = False
                    elif "wrongtype" not in message:
                        raise
            raw_value = client.get(key)
        except RedisError as exc:
            raise PersistenceError(f"Redis lookup failed for {key}: {exc}") from exc
        if not raw_value:
            return None
        if isinstance(raw_value, bytes):
            raw_value = raw_value.decode("utf-8")
        try:
            value = json.loads(str(raw_value))
        except json.JSONDecodeError:
            logger.warning("Ignoring malformed case document at %s", key)
            return None
        return value if isinstance(value, dict) else None

    def _append_archive(self, document: Dict[str, Any]) -> None:
        try:
            with self._archive_path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(document, ensure_ascii=False) + "\n")
        except OSError as exc:
            raise PersistenceError(
                f"Case archive write failed: {exc}"
            ) from exc

    def _archive_contains(self, case_number: str) -> bool:
        return any(
            document.get("caseNumber") == case_number
            for document in self._iter_archive()
        )

    def _iter_archive(self) -> Iterator[Dict[str, Any]]:
        if not self._archive_path.exists():
            return
        try:
            with self._archive_path.open("r", encoding="utf-8") as handle:
                for line_number, line in enumerate(handle, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        document = json.loads(line)
                    except json.JSONDecodeError:
                        logger.warning(
                            "Skipping malformed archive line %d in %s",
                            line_number,
                            self._archive_path,
                        )
                        continue
                    if isinstance(document, dict) and "caseNumber" in document:
                        yield document
        except OSError as exc:
            raise PersistenceError(f"Case archive read failed: {exc}") from exc
