"""通知接口"""

from typing import Any, Dict, List

from ..conv import get_int, get_list, get_str
from ..types import Notification, UploadStatus
from .base import BaseApi


def decode_notification(data: Dict[str, Any]) -> Notification:
    return Notification(
        uuid=get_str(data, 'uuid'),
        time=get_int(data, 'time'),
        interval=get_int(data, 'interval'),
        title=get_str(data, 'title'),
        body=get_str(data, 'body'),
        upload_status=UploadStatus.UP_TO_DATE
    )


def _encode(notification: Notification) -> Dict[str, Any]:
    return {
        'uuid': notification.uuid,
        'time': notification.time,
        'interval': notification.interval,
        'title': notification.title,
        'body': notification.body
    }


class NotificationsApi(BaseApi):
    """通知的增删改查"""

    def create_notification(self, credential: str, notification: Notification) -> Notification:
        data = self._request('post', '/notification', credential, body=_encode(notification))
        return decode_notification(data)

    def update_notification(self, credential: str, notification: Notification) -> Notification:
        body = _encode(notification)
        body.pop('uuid')
        data = self._request('put', f'/notification/{notification.uuid}', credential, body=body)
        return decode_notification(data)

    def delete_notification(self, credential: str, uuid: str) -> None:
        self._request('delete', f'/notification/{uuid}', credential)

    def get_notifications(self, credential: str) -> List[Notification]:
        """获取当前用户在本应用下的全部通知"""
        data = self._request('get', '/notifications', credential)
        return [
            decode_notification(item)
            for item in get_list(data, 'notifications')
            if isinstance(item, dict)
        ]
