"""
Redis 本地存储
"""
import json
from typing import Iterator, List, Optional

import redis
from loguru import logger

from table_api.conv import get_table_object_key
from table_api.types import Entity, PENDING_STATUSES, entity_from_dict
from .store import CollectionId, LocalStore


class RedisStore(LocalStore):
    """
    基于 Redis 的本地存储

    实体以 JSON 保存在 ``tableObject:{collection}/{uuid}`` 键下，
    有序集合 ``index_key`` 记录首次写入顺序
    """

    def __init__(self, redis_client: redis.Redis, index_key: str = "tableObject:index",
                 sequence_key: str = "tableObject:sequence"):
        self.redis = redis_client
        self.index_key = index_key
        self.sequence_key = sequence_key

    @classmethod
    def from_config(cls, host: str = "localhost", port: int = 6379, db: int = 0) -> "RedisStore":
        client = redis.Redis(host=host, port=port, db=db, decode_responses=True)
        client.ping()
        logger.info(f"Redis store connected: {host}:{port}/{db}")
        return cls(client)

    def get(self, collection_id: CollectionId, uuid: str) -> Optional[Entity]:
        data = self.redis.get(get_table_object_key(collection_id, uuid))
        if not data:
            return None
        return entity_from_dict(json.loads(data))

    def put(self, entity: Entity) -> None:
        key = get_table_object_key(entity.collection_id, entity.uuid)
        payload = json.dumps(entity.to_dict(), sort_keys=True)

        if self.redis.zscore(self.index_key, key) is None:
            sequence = self.redis.incr(self.sequence_key)
            self.redis.zadd(self.index_key, {key: sequence}, nx=True)
        self.redis.set(key, payload)

    def delete(self, collection_id: CollectionId, uuid: str) -> None:
        key = get_table_object_key(collection_id, uuid)
        self.redis.delete(key)
        self.redis.zrem(self.index_key, key)

    def _iter_keys(self, collection_id: Optional[CollectionId] = None) -> List[str]:
        prefix = get_table_object_key(collection_id)
        return [key for key in self.redis.zrange(self.index_key, 0, -1) if key.startswith(prefix)]

    def _load(self, keys: List[str]) -> List[Entity]:
        if not keys:
            return []
        entities = []
        for data in self.redis.mget(keys):
            if data:
                entities.append(entity_from_dict(json.loads(data)))
        return entities

    def list(self, collection_id: CollectionId) -> List[Entity]:
        return self._load(self._iter_keys(collection_id))

    def list_pending(self, collection_id: Optional[CollectionId] = None) -> Iterator[Entity]:
        for entity in self._load(self._iter_keys(collection_id)):
            if entity.upload_status in PENDING_STATUSES:
                yield entity

    def close(self) -> None:
        self.redis.close()
