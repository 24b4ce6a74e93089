"""Exceptions raised by the wheel spinner."""

from __future__ import annotations

from typing import Optional


class WheelError(RuntimeError):
    """Base class for failures while spinning a giveaway wheel."""


class NoParticipantsError(WheelError):
    """Raised when a wheel is spun without any participants."""

    def __init__(self, message: str = "Cannot spin a wheel with no participants.") -> None:
        super().__init__(message)


class PayloadTooLargeError(WheelError):
    """Raised when the encoded animation exceeds the upload ceiling."""

    def __init__(self, size: int, ceiling: int) -> None:
        self.size = size
        self.ceiling = ceiling
        super().__init__(
            f"Generated wheel ({size / 1024 / 1024:.2f}MB) exceeds the "
            f"{ceiling / 1024 / 1024:.2f}MB upload limit."
        )


class GenerationTimedOut(WheelError):
    """Raised when generating a spin takes longer than the caller allowed."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"Wheel generation exceeded {timeout:.1f}s and was discarded.")


class RenderFrameError(WheelError):
    """Raised when a frame cannot be drawn, or when no frame survived at all."""

    def __init__(self, message: str, frame_index: Optional[int] = None) -> None:
        self.frame_index = frame_index
        super().__init__(message)
