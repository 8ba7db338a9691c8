"""Shared FastAPI dependencies."""

from fastapi import Request

from replygate.services import Services


def get_services(request: Request) -> Services:
    return request.app.state.services
