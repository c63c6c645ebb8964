"""
선수 알림 발행

실제 전달(메시지/푸시)은 범위 밖이며, 여기서는 로그와 메모리 기록만 남긴다.
전달이 필요하면 같은 notify 시그니처를 가진 객체를 주입한다.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from loguru import logger

from .models import NotificationKind


@dataclass
class Notification:
    """선수 알림"""
    competitor_id: int
    message_kind: str
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "competitor_id": self.competitor_id,
            "message_kind": self.message_kind,
            "payload": self.payload,
            "timestamp": self.timestamp.isoformat(),
        }


class NotificationSink:
    """알림 기록기"""

    def __init__(self, max_log_size: int = 1000):
        self._log: List[Notification] = []
        self._max_log_size = max_log_size

    def notify(self, competitor_id: int, message_kind, payload: Optional[Dict[str, Any]] = None) -> None:
        """알림 발행"""
        kind = NotificationKind(message_kind).value
        notification = Notification(competitor_id=competitor_id, message_kind=kind, payload=payload or {})
        logger.info(f"📢 알림: {kind} → 선수 {competitor_id}")

        self._log.append(notification)
        if len(self._log) > self._max_log_size:
            self._log = self._log[-self._max_log_size:]

    @property
    def sent(self) -> List[Notification]:
        return list(self._log)

    def sent_to(self, competitor_id: int, message_kind=None) -> List[Notification]:
        """선수별 발행 기록"""
        kind = NotificationKind(message_kind).value if message_kind else None
        return [
            n for n in self._log
            if n.competitor_id == competitor_id and (kind is None or n.message_kind == kind)
        ]

    def clear(self) -> None:
        self._log = []
