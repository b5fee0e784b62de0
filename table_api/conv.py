"""类型转换辅助函数"""

from typing import Any, Dict, List, Optional, Union


TABLE_OBJECT_KEY_PREFIX = "tableObject:"


def get_str(record: Dict[str, Any], key: str) -> str:
    """
    从字典中获取字符串值

    Args:
        record: 响应字典
        key: 键名

    Returns:
        字符串值，不存在或类型错误时返回空字符串
    """
    value = record.get(key)
    if isinstance(value, str):
        return value
    return ""


def get_int(record: Dict[str, Any], key: str) -> int:
    """
    从字典中获取整数值

    Args:
        record: 响应字典
        key: 键名

    Returns:
        整数值，不存在或类型错误时返回 0
    """
    value = record.get(key)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return 0


def get_list(record: Dict[str, Any], key: str) -> List[Any]:
    """从字典中获取列表，不存在时返回空列表"""
    value = record.get(key)
    if isinstance(value, list):
        return value
    return []


def get_table_object_key(collection_id: Optional[Union[int, str]] = None,
                         uuid: Optional[str] = None) -> Optional[str]:
    """
    生成本地存储中表对象的键

    - 无集合无 uuid: 所有表对象的前缀 ``tableObject:``
    - 仅集合: 该集合的前缀 ``tableObject:{collection}/``
    - 集合和 uuid: 完整键 ``tableObject:{collection}/{uuid}``
    - 仅 uuid: 无法定位，返回 None
    """
    no_collection = collection_id is None or collection_id == -1
    if no_collection and not uuid:
        return TABLE_OBJECT_KEY_PREFIX
    if not no_collection and not uuid:
        return f"{TABLE_OBJECT_KEY_PREFIX}{collection_id}/"
    if not no_collection and uuid:
        return f"{TABLE_OBJECT_KEY_PREFIX}{collection_id}/{uuid}"
    return None
