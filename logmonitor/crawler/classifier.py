"""Coarse error detection for build logs."""

from __future__ import annotations

from .constants import DEFAULT_ERROR_SIGNATURE


def decode_body(body: bytes | str) -> str:
    if isinstance(body, str):
        return body
    return bytes(body).decode("utf-8", errors="replace")


def classify_log(body: bytes | str, *, signature: str = DEFAULT_ERROR_SIGNATURE) -> bool:
    """Return True if the log text contains `signature` (case-sensitive).

    Any byte sequence is classifiable; undecodable bytes are replaced rather
    than rejected. The match is a plain substring test, so a log that merely
    mentions "error" counts as erroring and a failure worded differently does
    not.
    """

    return signature in decode_body(body)


class LogClassifier:
    """Callable wrapper binding a configured error signature."""

    def __init__(self, signature: str = DEFAULT_ERROR_SIGNATURE) -> None:
        if not signature:
            raise ValueError("error signature must be a non-empty string")
        self.signature = signature

    def __call__(self, body: bytes | str) -> bool:
        return classify_log(body, signature=self.signature)


__all__ = ["LogClassifier", "classify_log", "decode_body"]
