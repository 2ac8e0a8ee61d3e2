# backend/app/services/notifications.py
"""
다음 알림 시각(next_notification) 계산

실제 알림 발송은 이 서비스의 범위가 아닙니다. 여기서는 시각만 계산합니다.
'now'는 항상 호출자가 넘겨줍니다. (테스트에서 시계를 고정하기 위함)
"""

from datetime import datetime, timedelta

from app.models.task import (
    NotificationFrequency,
    NotificationInterval,
    NotificationType,
    TaskInDB,
)


def calculate_next_notification(frequency: NotificationFrequency, now: datetime) -> datetime:
    # 1) 한 번만: 시작 시각 그대로
    if frequency.type == NotificationType.ONCE:
        return frequency.start_time

    hours = frequency.custom_interval.hours
    minutes = frequency.custom_interval.minutes

    # 2) 매일: 오늘 HH:MM, 이미 지났으면(같아도) 내일
    if frequency.interval == NotificationInterval.DAILY:
        next_notify = now.replace(hour=hours, minute=minutes, second=0, microsecond=0)
        if next_notify <= now:
            next_notify = next_notify + timedelta(days=1)
        return next_notify

    # 3) custom: now 기준 상대 시간
    return now + timedelta(hours=hours, minutes=minutes)


def refresh_next_notification(task: TaskInDB, now: datetime, *, force: bool = False) -> bool:
    """
    알림 설정이 바뀌었거나(force) next_notification이 비어 있으면 다시 계산합니다.
    계산했으면 True.
    """
    if not force and task.next_notification is not None:
        return False
    task.next_notification = calculate_next_notification(task.notification_frequency, now)
    return True
