# Copyright (c) Syntropy Systems
"""Shared Pydantic model helpers for blocktune."""

from __future__ import annotations

from typing import ClassVar

from pydantic import BaseModel, ConfigDict


class BlocktuneBaseModel(BaseModel):
    """Base model with shared config for blocktune schemas."""

    model_config: ClassVar[ConfigDict] = ConfigDict(
        extra="ignore",
        populate_by_name=True,
    )


class FrozenModel(BaseModel):
    """Base model for records that must never change after creation."""

    model_config: ClassVar[ConfigDict] = ConfigDict(
        extra="forbid",
        frozen=True,
    )
