"""Shared FastAPI dependencies."""

from __future__ import annotations

from fastapi import Depends, Request

from ..services import DataSource, ReportEngine, TemplateStore


def get_data_source(request: Request) -> DataSource:
    return request.app.state.data_source


def get_engine(source: DataSource = Depends(get_data_source)) -> ReportEngine:
    return ReportEngine(source)


def get_template_store(source: DataSource = Depends(get_data_source)) -> TemplateStore:
    return TemplateStore(source)
