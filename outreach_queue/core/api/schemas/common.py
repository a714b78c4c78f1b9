"""Shared schema models."""

from pydantic import BaseModel


class RunResponse(BaseModel):
    run_id: str


class CountResponse(BaseModel):
    count: int


class MessageResponse(BaseModel):
    message: str
