"""Shared route dependencies."""

from fastapi import Request

from lcl_scraper.core.storage import EventStore


def get_store(request: Request) -> EventStore:
    return request.app.state.store
