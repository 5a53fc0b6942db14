"""Pydantic schemas for Users."""
from __future__ import annotations
from datetime import datetime
from pydantic import BaseModel


class UserCreate(BaseModel):
    email: str
    first_name: str = ""
    last_name: str = ""
    is_super_admin: bool = False


class UserOut(BaseModel):
    id: int
    email: str
    first_name: str
    last_name: str
    full_name: str
    is_super_admin: bool
    created_at: datetime

    model_config = {"from_attributes": True}
