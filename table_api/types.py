"""表对象类型定义"""

import uuid as uuid_lib
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, ClassVar, Dict, List, Optional, Union


# 通知所在的保留集合
NOTIFICATIONS = "notifications"

ENTITY_KIND_TABLE_OBJECT = "table_object"
ENTITY_KIND_NOTIFICATION = "notification"

PropertyValue = Union[str, int, float, bool]


class UploadStatus(IntEnum):
    """本地对象相对服务端的上传状态"""
    UP_TO_DATE = 0
    NEW = 1
    UPDATED = 2
    DELETED = 3
    NO_UPLOAD = 4


# 需要推送到服务端的状态
PENDING_STATUSES = (UploadStatus.NEW, UploadStatus.UPDATED, UploadStatus.DELETED)


def generate_uuid() -> str:
    return str(uuid_lib.uuid4())


@dataclass
class TableObject:
    """表对象"""
    table_id: int
    uuid: str = field(default_factory=generate_uuid)
    etag: Optional[str] = None
    properties: Dict[str, PropertyValue] = field(default_factory=dict)
    upload_status: UploadStatus = UploadStatus.NEW
    is_file: bool = False

    kind: ClassVar[str] = ENTITY_KIND_TABLE_OBJECT

    @property
    def collection_id(self) -> int:
        return self.table_id

    @property
    def is_pending(self) -> bool:
        return self.upload_status in PENDING_STATUSES

    def get_property(self, name: str, default: Any = None) -> Any:
        return self.properties.get(name, default)

    def set_property(self, name: str, value: PropertyValue) -> None:
        """设置属性，只允许标量值"""
        if isinstance(value, (dict, list, tuple, set)) or value is None:
            raise TypeError(f"Property {name!r} must be a str, number or bool, got {type(value).__name__}")
        self.properties[name] = value

    def remove_property(self, name: str) -> None:
        self.properties.pop(name, None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind,
            'table_id': self.table_id,
            'uuid': self.uuid,
            'etag': self.etag,
            'properties': dict(self.properties),
            'upload_status': int(self.upload_status),
            'file': self.is_file
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> 'TableObject':
        return TableObject(
            table_id=data['table_id'],
            uuid=data['uuid'],
            etag=data.get('etag'),
            properties=dict(data.get('properties') or {}),
            upload_status=UploadStatus(data.get('upload_status', UploadStatus.UP_TO_DATE)),
            is_file=bool(data.get('file', False))
        )


@dataclass
class Notification:
    """通知，没有版本标签，按字段值比较"""
    time: int
    interval: int
    title: str
    body: str
    uuid: str = field(default_factory=generate_uuid)
    upload_status: UploadStatus = UploadStatus.NEW

    kind: ClassVar[str] = ENTITY_KIND_NOTIFICATION

    @property
    def collection_id(self) -> str:
        return NOTIFICATIONS

    @property
    def etag(self) -> None:
        return None

    @property
    def is_pending(self) -> bool:
        return self.upload_status in PENDING_STATUSES

    def same_content(self, other: 'Notification') -> bool:
        return (self.time, self.interval, self.title, self.body) == \
            (other.time, other.interval, other.title, other.body)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind,
            'uuid': self.uuid,
            'time': self.time,
            'interval': self.interval,
            'title': self.title,
            'body': self.body,
            'upload_status': int(self.upload_status)
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> 'Notification':
        return Notification(
            uuid=data['uuid'],
            time=data['time'],
            interval=data['interval'],
            title=data['title'],
            body=data['body'],
            upload_status=UploadStatus(data.get('upload_status', UploadStatus.UP_TO_DATE))
        )


Entity = Union[TableObject, Notification]


def entity_from_dict(data: Dict[str, Any]) -> Entity:
    """根据 kind 字段还原实体"""
    kind = data.get('kind', ENTITY_KIND_TABLE_OBJECT)
    if kind == ENTITY_KIND_NOTIFICATION:
        return Notification.from_dict(data)
    if kind == ENTITY_KIND_TABLE_OBJECT:
        return TableObject.from_dict(data)
    raise ValueError(f"Unknown entity kind: {kind}")


@dataclass
class TableObjectRef:
    """表分页中的对象引用"""
    uuid: str
    etag: str


@dataclass
class TablePage:
    """表的一页数据"""
    table_id: int
    name: str
    pages: int
    table_objects: List[TableObjectRef]
    app_id: Optional[int] = None
