"""表对象接口"""

from typing import Any, Dict

from loguru import logger

from ..conv import get_int, get_str
from ..types import PropertyValue, TableObject, UploadStatus
from .base import BaseApi


def decode_table_object(data: Dict[str, Any]) -> TableObject:
    """把接口返回的表对象转换为 TableObject，状态为 UP_TO_DATE"""
    properties = data.get('properties') or {}
    return TableObject(
        table_id=get_int(data, 'table_id'),
        uuid=get_str(data, 'uuid'),
        etag=get_str(data, 'etag'),
        properties=dict(properties),
        upload_status=UploadStatus.UP_TO_DATE,
        is_file=bool(data.get('file', False))
    )


class TableObjectsApi(BaseApi):
    """表对象的增删改查"""

    def create_table_object(self, credential: str, table_object: TableObject) -> TableObject:
        """
        创建表对象

        Args:
            credential: 会话凭证
            table_object: 本地表对象，uuid 由客户端生成

        Returns:
            服务端返回的表对象（带 etag）
        """
        body = {
            'uuid': table_object.uuid,
            'table_id': table_object.table_id,
            'file': table_object.is_file,
            'properties': dict(table_object.properties)
        }
        data = self._request('post', '/table_object', credential, body=body)
        logger.debug(f"Created table object {table_object.uuid} in table {table_object.table_id}")
        return decode_table_object(data)

    def get_table_object(self, credential: str, uuid: str) -> TableObject:
        """获取单个表对象"""
        data = self._request('get', f'/table_object/{uuid}', credential)
        return decode_table_object(data)

    def update_table_object(self, credential: str, uuid: str,
                            properties: Dict[str, PropertyValue]) -> TableObject:
        """更新表对象的属性"""
        data = self._request('put', f'/table_object/{uuid}', credential,
                             body={'properties': dict(properties)})
        logger.debug(f"Updated table object {uuid}")
        return decode_table_object(data)

    def delete_table_object(self, credential: str, uuid: str) -> None:
        """删除表对象"""
        self._request('delete', f'/table_object/{uuid}', credential)
        logger.debug(f"Deleted table object {uuid}")

    def remove_table_object(self, credential: str, uuid: str) -> None:
        """移除当前用户对共享表对象的访问权限"""
        self._request('delete', f'/table_object/{uuid}/access', credential)
        logger.debug(f"Removed access to table object {uuid}")

    def set_table_object_file(self, credential: str, uuid: str, data: bytes,
                              content_type: str) -> TableObject:
        """
        上传文件类表对象的内容

        Args:
            credential: 会话凭证
            uuid: 以 file=True 创建的表对象
            data: 文件内容
            content_type: 文件的 MIME 类型

        Returns:
            服务端返回的表对象（新的 etag）
        """
        result = self._upload('put', f'/table_object/{uuid}/file', credential, data, content_type)
        logger.debug(f"Uploaded {len(data)} bytes of file content for table object {uuid}")
        return decode_table_object(result)
