from __future__ import annotations

from admix.core.errors import MalformedInputError


def check_id(value: str, what: str) -> str:
    # ids are embedded in store keys, so ":" would let one ad reach into another's namespace
    if not value or ":" in value:
        raise MalformedInputError(f"invalid {what}: {value!r}")
    return value


class AdKeys:
    @staticmethod
    def meta(ad_id: str) -> str:
        return f"{ad_id}:meta"

    @staticmethod
    def version_prefix(ad_id: str, stream: str) -> str:
        return f"{ad_id}:{stream}:version:"

    @staticmethod
    def version(ad_id: str, stream: str, version_id: str) -> str:
        return f"{ad_id}:{stream}:version:{version_id}"

    @staticmethod
    def active(ad_id: str, stream: str) -> str:
        return f"{ad_id}:{stream}:active"

    @staticmethod
    def seq(ad_id: str, stream: str) -> str:
        return f"{ad_id}:{stream}:seq"

    @staticmethod
    def mixer(ad_id: str) -> str:
        return f"{ad_id}:mixer"

    @staticmethod
    def durations(ad_id: str) -> str:
        return f"{ad_id}:mixer:durations"
