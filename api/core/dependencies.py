"""
FastAPI dependencies that hand out the process-scoped resources created in
the app lifespan (see `api/main.py`).
"""

from __future__ import annotations

from fastapi import Request


def get_ad_repository(request: Request):
    return request.app.state.ad_repository


def get_image_repository(request: Request):
    return request.app.state.image_repository
