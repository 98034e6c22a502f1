from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class APIModel(BaseModel):
    """Base model with attribute loading enabled."""

    model_config = ConfigDict(from_attributes=True, protected_namespaces=())

