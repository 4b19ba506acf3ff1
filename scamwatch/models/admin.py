"""Moderator request/response models."""
from pydantic import BaseModel

from scamwatch.models.report import ReportOut


class LoginRequest(BaseModel):
    password: str


class LoginOut(BaseModel):
    authenticated: bool = True


class DashboardOut(BaseModel):
    total: int
    pending: int
    approved: int
    pending_reports: list[ReportOut]
    approved_reports: list[ReportOut]
