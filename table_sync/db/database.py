"""
MySQL 本地存储
"""
import json
from typing import Dict, List, Any, Iterator, Optional, Tuple
from contextlib import contextmanager
import pymysql
from pymysql.connections import Connection
from pymysql.cursors import DictCursor
from dbutils.pooled_db import PooledDB
from loguru import logger

from table_api.types import Entity, PENDING_STATUSES, entity_from_dict
from ..config.config import StoreConfig
from .store import CollectionId, LocalStore


TABLE_NAME = "table_objects"


class Database:
    """数据库操作类"""

    def __init__(self, config: StoreConfig, pool: Optional[PooledDB] = None):
        self.config = config
        self._pool = pool
        if self._pool is None:
            self._init_pool()

    def _init_pool(self) -> None:
        """初始化连接池"""
        try:
            self._pool = PooledDB(
                creator=pymysql,
                maxconnections=self.config.mysql_pool_size,
                mincached=1,
                maxcached=self.config.mysql_pool_size,
                blocking=True,
                host=self.config.mysql_host,
                port=self.config.mysql_port,
                user=self.config.mysql_user,
                password=self.config.mysql_password,
                database=self.config.mysql_database,
                charset=self.config.mysql_charset,
                cursorclass=DictCursor
            )
            logger.info(f"Database connection pool initialized: "
                        f"{self.config.mysql_host}:{self.config.mysql_port}")
        except Exception as e:
            logger.error(f"Failed to initialize database pool: {e}")
            raise

    @contextmanager
    def get_connection(self) -> Iterator[Connection]:
        """获取数据库连接（上下文管理器）"""
        conn = None
        try:
            conn = self._pool.connection()
            yield conn
        except Exception as e:
            if conn:
                conn.rollback()
            logger.error(f"Database operation error: {e}")
            raise
        finally:
            if conn:
                conn.close()

    def execute(self, sql: str, params: Optional[Tuple] = None) -> int:
        """执行SQL语句"""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            try:
                result = cursor.execute(sql, params)
                conn.commit()
                return result
            finally:
                cursor.close()

    def query(self, sql: str, params: Optional[Tuple] = None) -> List[Dict[str, Any]]:
        """查询数据"""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            try:
                cursor.execute(sql, params)
                return list(cursor.fetchall())
            finally:
                cursor.close()

    def query_one(self, sql: str, params: Optional[Tuple] = None) -> Optional[Dict[str, Any]]:
        """查询单条数据"""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            try:
                cursor.execute(sql, params)
                return cursor.fetchone()
            finally:
                cursor.close()

    def create_tables(self) -> None:
        """创建本地副本表"""
        self.execute(f"""
            CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
                seq BIGINT AUTO_INCREMENT PRIMARY KEY,
                collection_id VARCHAR(100) NOT NULL,
                uuid VARCHAR(64) NOT NULL,
                kind VARCHAR(20) NOT NULL,
                upload_status TINYINT NOT NULL,
                data JSON NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP ON UPDATE CURRENT_TIMESTAMP,
                UNIQUE KEY uk_collection_uuid (collection_id, uuid),
                INDEX idx_upload_status (upload_status)
            ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4
        """)
        logger.info("Local replica table created/verified")

    def test_connection(self) -> bool:
        """测试数据库连接"""
        try:
            self.query_one("SELECT 1 as test")
            return True
        except Exception as e:
            logger.error(f"Database connection test failed: {e}")
            return False


class MySQLStore(LocalStore):
    """基于 MySQL 的本地存储，seq 列保留首次写入顺序"""

    def __init__(self, database: Database):
        self.db = database

    @classmethod
    def from_config(cls, config: StoreConfig) -> "MySQLStore":
        database = Database(config)
        database.create_tables()
        return cls(database)

    @staticmethod
    def _decode(row: Dict[str, Any]) -> Entity:
        data = row['data']
        if isinstance(data, (str, bytes)):
            data = json.loads(data)
        return entity_from_dict(data)

    def get(self, collection_id: CollectionId, uuid: str) -> Optional[Entity]:
        row = self.db.query_one(
            f"SELECT data FROM {TABLE_NAME} WHERE collection_id = %s AND uuid = %s",
            (str(collection_id), uuid)
        )
        return self._decode(row) if row else None

    def put(self, entity: Entity) -> None:
        self.db.execute(f"""
            INSERT INTO {TABLE_NAME} (collection_id, uuid, kind, upload_status, data)
            VALUES (%s, %s, %s, %s, %s)
            ON DUPLICATE KEY UPDATE
                kind = VALUES(kind),
                upload_status = VALUES(upload_status),
                data = VALUES(data)
        """, (
            str(entity.collection_id),
            entity.uuid,
            entity.kind,
            int(entity.upload_status),
            json.dumps(entity.to_dict(), sort_keys=True, ensure_ascii=False)
        ))

    def delete(self, collection_id: CollectionId, uuid: str) -> None:
        self.db.execute(
            f"DELETE FROM {TABLE_NAME} WHERE collection_id = %s AND uuid = %s",
            (str(collection_id), uuid)
        )

    def list(self, collection_id: CollectionId) -> List[Entity]:
        rows = self.db.query(
            f"SELECT data FROM {TABLE_NAME} WHERE collection_id = %s ORDER BY seq ASC",
            (str(collection_id),)
        )
        return [self._decode(row) for row in rows]

    def list_pending(self, collection_id: Optional[CollectionId] = None) -> Iterator[Entity]:
        statuses = tuple(int(s) for s in PENDING_STATUSES)
        placeholders = ', '.join(['%s'] * len(statuses))
        sql = f"SELECT data FROM {TABLE_NAME} WHERE upload_status IN ({placeholders})"
        params: Tuple = statuses
        if collection_id is not None:
            sql += " AND collection_id = %s"
            params = statuses + (str(collection_id),)
        sql += " ORDER BY seq ASC"

        for row in self.db.query(sql, params):
            yield self._decode(row)
