"""
Domain models for the asset registry.

An Asset is one row of the registry collection. Records are stored as
camelCase JSON because the same documents are read by the browser
front end; the dataclasses here use snake_case and convert at the edge.

Optional fields have explicit defaults and are validated once, in
`Asset.from_dict`, so the rest of the engine never has to guess whether
a field is present.
"""

import random
import string
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional
from uuid import uuid4


class Category(Enum):
    """Marketplace categories an asset can be filed under."""
    MODEL = "Model"
    MODULE = "Module"
    SCRIPT = "Script"
    MAP = "Map"
    MODEL_3D = "3D Model"
    UI = "UI"
    PLUGIN = "Plugin"


class FileType(Enum):
    """Recognized binary formats for the primary file."""
    RBXM = ".rbxm"
    RBXL = ".rbxl"
    RBXMX = ".rbxmx"

    @property
    def extension(self) -> str:
        """Extension without the leading dot."""
        return self.value.lstrip(".")


@dataclass(frozen=True)
class User:
    """
    Caller identity as supplied by the session layer.

    The engine treats `id` as an opaque string and never checks it.
    """
    id: str
    name: str
    email: str = ""
    avatar: str = ""


@dataclass
class Comment:
    """A comment left on an asset."""
    id: str = field(default_factory=lambda: uuid4().hex)
    user_id: str = ""
    user_name: str = ""
    user_avatar: str = ""
    text: str = ""
    timestamp: int = field(default_factory=lambda: now_ms())

    def __post_init__(self) -> None:
        if not self.text.strip():
            raise ValueError("Comment text cannot be empty")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "userName": self.user_name,
            "userAvatar": self.user_avatar,
            "text": self.text,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Comment":
        if not isinstance(data, dict):
            raise ValueError("Comment must be an object")
        return cls(
            id=_require_str(data, "id"),
            user_id=_optional_str(data, "userId"),
            user_name=_optional_str(data, "userName"),
            user_avatar=_optional_str(data, "userAvatar"),
            text=_optional_str(data, "text"),
            timestamp=_non_negative_int(data, "timestamp"),
        )


@dataclass
class Asset:
    """
    A single registry record.

    URL fields stay empty until the upload pipeline has written every
    artifact. `likes` holds user ids; its length is the like count.
    """
    id: str
    user_id: str
    author_name: str
    title: str
    category: Category
    file_type: FileType
    author_avatar: str = ""
    description: str = ""
    credits: str = ""
    thumbnail_url: str = ""
    video_url: str = ""
    file_url: str = ""
    likes: list[str] = field(default_factory=list)
    download_count: int = 0
    reports: int = 0
    timestamp: int = field(default_factory=lambda: now_ms())
    keywords: list[str] = field(default_factory=list)
    comments: list[Comment] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.id.strip():
            raise ValueError("Asset id cannot be empty")
        if self.download_count < 0:
            raise ValueError("download_count cannot be negative")
        if self.reports < 0:
            raise ValueError("reports cannot be negative")

    @property
    def like_count(self) -> int:
        return len(self.likes)

    def is_liked_by(self, user_id: str) -> bool:
        return user_id in self.likes

    @property
    def has_artifacts(self) -> bool:
        """True once all three retrieval URLs are populated."""
        return bool(self.thumbnail_url and self.video_url and self.file_url)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the camelCase wire shape."""
        return {
            "id": self.id,
            "userId": self.user_id,
            "authorName": self.author_name,
            "authorAvatar": self.author_avatar,
            "title": self.title,
            "description": self.description,
            "category": self.category.value,
            "fileType": self.file_type.value,
            "credits": self.credits,
            "thumbnailUrl": self.thumbnail_url,
            "videoUrl": self.video_url,
            "fileUrl": self.file_url,
            "likes": list(self.likes),
            "downloadCount": self.download_count,
            "reports": self.reports,
            "timestamp": self.timestamp,
            "keywords": list(self.keywords),
            "comments": [c.to_dict() for c in self.comments],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Asset":
        """
        Build an Asset from its wire shape, validating as we go.

        Raises ValueError describing the first problem found. Older
        records stored `reports` as a list of reporter ids; those are
        read as the length of the list.
        """
        if not isinstance(data, dict):
            raise ValueError("Asset record must be an object")

        try:
            category = Category(data.get("category"))
        except ValueError:
            raise ValueError(f"Unknown category: {data.get('category')!r}")
        try:
            file_type = FileType(data.get("fileType"))
        except ValueError:
            raise ValueError(f"Unknown file type: {data.get('fileType')!r}")

        reports = data.get("reports", 0)
        if isinstance(reports, list):
            reports = len(reports)

        comments = data.get("comments") or []
        if not isinstance(comments, list):
            raise ValueError("comments must be a list")

        return cls(
            id=_require_str(data, "id"),
            user_id=_optional_str(data, "userId"),
            author_name=_optional_str(data, "authorName"),
            author_avatar=_optional_str(data, "authorAvatar"),
            title=_optional_str(data, "title"),
            description=_optional_str(data, "description"),
            category=category,
            file_type=file_type,
            credits=_optional_str(data, "credits"),
            thumbnail_url=_optional_str(data, "thumbnailUrl"),
            video_url=_optional_str(data, "videoUrl"),
            file_url=_optional_str(data, "fileUrl"),
            likes=_str_list(data, "likes"),
            download_count=_non_negative_int(data, "downloadCount"),
            reports=_non_negative_int({"reports": reports}, "reports"),
            timestamp=_non_negative_int(data, "timestamp"),
            keywords=_str_list(data, "keywords"),
            comments=[Comment.from_dict(c) for c in comments],
        )


# ---------------------------------------------------------------------------
# Identifiers
# ---------------------------------------------------------------------------

_BASE36 = string.digits + string.ascii_lowercase


def now_ms() -> int:
    """Current time in milliseconds since the epoch."""
    return int(time.time() * 1000)


def to_base36(value: int) -> str:
    if value < 0:
        raise ValueError("base36 values must be non-negative")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def generate_asset_id(
    prefix: str = "EXC",
    now: Optional[int] = None,
    rng: Optional[random.Random] = None,
) -> str:
    """
    Generate an asset id: PREFIX-<base36 ms timestamp>-<3 random chars>.

    The result is uppercased, e.g. "EXC-LZ8Q2K1C-7QF".
    """
    timestamp = now if now is not None else now_ms()
    chooser = rng or random.SystemRandom()
    suffix = "".join(chooser.choice(_BASE36) for _ in range(3))
    return f"{prefix}-{to_base36(timestamp)}-{suffix}".upper()


def new_asset(
    user: User,
    title: str,
    category: Category,
    file_type: FileType,
    description: str = "",
    credits: str = "",
    keywords: Optional[list[str]] = None,
    id_prefix: str = "EXC",
) -> Asset:
    """Create a fresh, not yet uploaded asset owned by `user`."""
    if not title.strip():
        raise ValueError("Asset title cannot be empty")

    timestamp = now_ms()
    return Asset(
        id=generate_asset_id(id_prefix, now=timestamp),
        user_id=user.id,
        author_name=user.name,
        author_avatar=user.avatar,
        title=title.strip(),
        description=description,
        category=category,
        file_type=file_type,
        credits=credits,
        timestamp=timestamp,
        keywords=list(keywords or []),
    )


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------

def _require_str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise ValueError(f"{key} must be a non-empty string")
    return value


def _optional_str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string")
    return value


def _str_list(data: dict[str, Any], key: str) -> list[str]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"{key} must be a list of strings")
    return list(value)


def _non_negative_int(data: dict[str, Any], key: str) -> int:
    value = data.get(key)
    if value is None:
        return 0
    # bool is an int subclass; a stored true/false is a bug, not a count
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number")
    if value < 0:
        raise ValueError(f"{key} cannot be negative")
    return int(value)
