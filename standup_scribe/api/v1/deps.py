"""Request-scoped access to the process-wide objects built in the app lifespan."""
from typing import Dict

from fastapi import Request

from ...config import Settings
from ...integrations.base import MessagingClient, Publisher
from ...integrations.slack_client import SlackClient
from ...services.session_cache import SessionCache
from ...utils.time import Clock
from ...workers.delivery import DeliveryWorker


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_session_cache(request: Request) -> SessionCache:
    return request.app.state.session_cache


def get_messaging(request: Request) -> MessagingClient:
    return request.app.state.messaging


def get_slack(request: Request) -> SlackClient:
    return request.app.state.slack


def get_publishers(request: Request) -> Dict[str, Publisher]:
    return request.app.state.publishers


def get_delivery_worker(request: Request) -> DeliveryWorker:
    return request.app.state.delivery_worker


def get_clock(request: Request) -> Clock:
    return request.app.state.clock
