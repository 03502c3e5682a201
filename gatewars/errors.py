#!/usr/bin/env python3
"""
Error taxonomy for the game-state core and the structured command result
returned across the command boundary.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


class GateWarsError(Exception):
    """Base class for errors raised by the core."""


class ValidationError(GateWarsError):
    """A command is not allowed: insufficient resources, requirement unmet, duplicate upgrade."""


class NetworkError(GateWarsError):
    """The Game Data Service could not be reached."""


class StateError(GateWarsError):
    """The coordinator has no usable context (no user, no current city)."""


class SnapshotError(GateWarsError):
    """A snapshot payload failed validation at ingestion."""


@dataclass(frozen=True)
class CommandResult:
    success: bool
    message: Optional[str] = None
    end_time: Optional[float] = None

    @classmethod
    def ok(cls, end_time: Optional[float] = None) -> "CommandResult":
        return cls(success=True, end_time=end_time)

    @classmethod
    def failed(cls, message: str) -> "CommandResult":
        return cls(success=False, message=message)

    def as_dict(self) -> dict:
        payload: dict = {"success": self.success}
        if self.message is not None:
            payload["message"] = self.message
        if self.end_time is not None:
            payload["end_time"] = self.end_time
        return payload
