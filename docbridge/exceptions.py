"""
Exception hierarchy for docbridge.

Every error raised by the codec, inference and streaming layers derives from
DocBridgeError so that jobs can report a classified error to the
notification channel.
"""

from typing import Any, Dict, Optional

from pymongo.errors import PyMongoError

MAX_FRAGMENT_LENGTH = 200


def _fragment(text: Any) -> str:
    """Shorten raw input for use in messages"""
    text = str(text)
    if len(text) > MAX_FRAGMENT_LENGTH:
        return text[:MAX_FRAGMENT_LENGTH] + "..."
    return text


class DocBridgeError(Exception):
    """Base class for all docbridge errors"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        """Serialize error for the notification channel"""
        return {"type": type(self).__name__, "message": self.message}


class TextSyntaxError(DocBridgeError):
    """Loose text could not be turned into a well-formed document"""

    def __init__(self, message: str, text: str = "", position: Optional[int] = None):
        super().__init__(message)
        self.text = text
        self.position = position

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["text"] = _fragment(self.text)
        if self.position is not None:
            data["position"] = self.position
        return data


class ValueFormatError(DocBridgeError, ValueError):
    """A sentinel or wire value failed its type-specific format check"""

    def __init__(self, key: Any, value: Any, expected: str, path: str = ""):
        self.key = key
        self.value = value
        self.expected = expected
        self.path = path or str(key)
        super().__init__(
            f'Value "{_fragment(value)}" of key "{key}" is no valid {expected}, '
            f"please check your input."
        )

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update(
            {
                "key": str(self.key),
                "value": _fragment(self.value),
                "expected": self.expected,
                "path": self.path,
            }
        )
        return data


class CapabilityError(DocBridgeError):
    """A write operation was attempted against a read-only store member"""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(
            f"Operation '{operation}' requires write access, "
            f"but the connected member is read-only"
        )


class SizeLimitError(DocBridgeError):
    """A single document exceeds the package limit (flagged, not fatal)"""

    def __init__(self, size: int, limit: int, index: Optional[int] = None):
        self.size = size
        self.limit = limit
        self.index = index
        super().__init__(
            f"Document of {size} bytes exceeds the package limit of {limit} bytes"
        )


class StreamIOError(DocBridgeError, IOError):
    """Underlying file or stream failure during a job"""


class StoreError(DocBridgeError):
    """Failure reported by the store driver"""


class JobCancelledError(DocBridgeError):
    """An import or export job was cancelled before completion"""


def classify_error(error: BaseException) -> DocBridgeError:
    """Map any exception onto the docbridge taxonomy"""
    if isinstance(error, DocBridgeError):
        return error

    if isinstance(error, PyMongoError):
        return StoreError(f"Mongo Error: {error}")
    if isinstance(error, UnicodeError):
        return StreamIOError(f"Stream is not valid text: {error}")
    if isinstance(error, OSError):
        return StreamIOError(str(error))
    return DocBridgeError(f"{type(error).__name__}: {error}")
