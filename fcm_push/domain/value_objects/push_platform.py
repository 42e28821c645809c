from __future__ import annotations

from enum import Enum


class PushPlatform(str, Enum):
    ANDROID = "ANDROID"
    IOS = "IOS"
    WEB = "WEB"

    @classmethod
    def parse(cls, value: str | PushPlatform) -> PushPlatform:
        if isinstance(value, PushPlatform):
            return value
        return cls(value.strip().upper())
