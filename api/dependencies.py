"""Зависимости обработчиков"""
from fastapi import Request
from services.notifications import NotificationDispatcher


def get_dispatcher(request: Request) -> NotificationDispatcher:
    """Очередь уведомлений приложения"""
    return request.app.state.dispatcher
