"""表接口"""

from typing import Any, Dict, Optional

from ..conv import get_int, get_list, get_str
from ..types import TableObjectRef, TablePage
from .base import BaseApi


def decode_table_page(data: Dict[str, Any]) -> TablePage:
    refs = [
        TableObjectRef(uuid=get_str(item, 'uuid'), etag=get_str(item, 'etag'))
        for item in get_list(data, 'table_objects')
        if isinstance(item, dict) and item.get('uuid')
    ]
    return TablePage(
        table_id=get_int(data, 'id'),
        name=get_str(data, 'name'),
        pages=get_int(data, 'pages'),
        table_objects=refs,
        app_id=data.get('app_id')
    )


class TablesApi(BaseApi):
    """表的分页读取"""

    def get_table(self, credential: str, table_id: int, page: int = 1,
                  count: Optional[int] = None) -> TablePage:
        """
        获取表的一页对象引用

        Args:
            credential: 会话凭证
            table_id: 表 ID
            page: 页码，从 1 开始
            count: 每页数量，为空时使用服务端默认值

        Returns:
            TablePage，其中 pages 为服务端报告的总页数
        """
        params: Dict[str, Any] = {'page': page}
        if count is not None:
            params['count'] = count

        data = self._request('get', f'/table/{table_id}', credential, params=params)
        table_page = decode_table_page(data)
        if not table_page.table_id:
            table_page.table_id = table_id
        return table_page
