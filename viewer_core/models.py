"""
Immutable records decoded from server payloads, plus their persisted form.

Every from_payload() either returns a complete record or raises
DecodeFailure; a half-filled record never escapes.
"""

import base64
import binascii
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Tuple

from .codec import NON_FINITE, pick, finite_or_none, parse_timestamp, format_timestamp
from .errors import DecodeFailure, DesyncFailure


def _require_id(data, what):
    value = pick(data, "image_id", "imageId")
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise DecodeFailure(f"{what} is missing image_id")
    value = str(value).strip()
    if not value:
        raise DecodeFailure(f"{what} is missing image_id")
    return value


def _decode_histogram(raw):
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise DecodeFailure("histogram is not a list")
    bins = []
    for i, value in enumerate(raw):
        if value is NON_FINITE or isinstance(value, bool):
            raise DecodeFailure(f"histogram[{i}] is not a count: {value!r}")
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        if not isinstance(value, int) or value < 0:
            raise DecodeFailure(f"histogram[{i}] is not a non-negative integer: {value!r}")
        bins.append(value)
    return tuple(bins)


# ─── Credentials ─────────────────────────────────────────────────

@dataclass(frozen=True)
class Credentials:
    access_token: str
    refresh_token: str
    access_expiry: datetime      # UTC, skew already subtracted
    refresh_expiry: datetime     # UTC

    def to_dict(self):
        return {
            "accessToken": self.access_token,
            "refreshToken": self.refresh_token,
            "accessExpiry": format_timestamp(self.access_expiry),
            "refreshExpiry": format_timestamp(self.refresh_expiry),
        }

    @classmethod
    def from_dict(cls, data):
        try:
            return cls(
                access_token=str(data["accessToken"]),
                refresh_token=str(data["refreshToken"]),
                access_expiry=parse_timestamp(data["accessExpiry"], "accessExpiry"),
                refresh_expiry=parse_timestamp(data["refreshExpiry"], "refreshExpiry"),
            )
        except (KeyError, TypeError) as e:
            raise DecodeFailure(f"Stored credentials incomplete: {e}") from e


@dataclass(frozen=True)
class TokenGrant:
    """Body of a login or refresh response."""

    access_token: str
    refresh_token: str
    expires_in: float

    @classmethod
    def from_payload(cls, data):
        access = pick(data, "access_token", "accessToken")
        refresh = pick(data, "refresh_token", "refreshToken")
        expires_in = pick(data, "expires_in", "expiresIn")
        if not isinstance(access, str) or not access:
            raise DecodeFailure("Token response is missing access_token")
        if not isinstance(refresh, str) or not refresh:
            raise DecodeFailure("Token response is missing refresh_token")
        if isinstance(expires_in, bool) or not isinstance(expires_in, (int, float)) \
                or not math.isfinite(expires_in):
            raise DecodeFailure("Token response is missing a numeric expires_in")
        return cls(access, refresh, float(expires_in))


# ─── Who-am-I ────────────────────────────────────────────────────

@dataclass(frozen=True)
class UserInfo:
    user_id: str
    username: str
    email: str = ""
    role: str = ""
    is_active: bool = True
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None

    @classmethod
    def from_payload(cls, data):
        username = pick(data, "username", "userName")
        if not isinstance(username, str) or not username:
            raise DecodeFailure("User profile is missing username")
        created = pick(data, "created_at", "createdAt")
        last_login = pick(data, "last_login", "lastLogin")
        return cls(
            user_id=str(pick(data, "user_id", "userId", "id", default="")),
            username=username,
            email=str(pick(data, "email", default="")),
            role=str(pick(data, "role", default="")),
            is_active=bool(pick(data, "is_active", "isActive", default=True)),
            created_at=parse_timestamp(created, "created_at") if created else None,
            last_login=parse_timestamp(last_login, "last_login") if last_login else None,
        )


# ─── Image / Result ──────────────────────────────────────────────

@dataclass(frozen=True)
class ImageRecord:
    image_id: str
    captured_at: datetime
    image_bytes: bytes = field(repr=False)

    @classmethod
    def from_payload(cls, data):
        image_id = _require_id(data, "Image response")
        captured_at = parse_timestamp(pick(data, "timestamp", "capturedAt"), "timestamp")
        encoded = pick(data, "image_data_base64", "imageDataBase64")
        if not isinstance(encoded, str) or not encoded.strip():
            raise DecodeFailure("Empty image data received")
        try:
            image_bytes = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecodeFailure(f"Image data is not valid base64: {e}") from e
        if not image_bytes:
            raise DecodeFailure("Empty image data received")
        return cls(image_id, captured_at, image_bytes)


@dataclass(frozen=True)
class ResultRecord:
    image_id: str
    intensity_average: Optional[float]    # None: server sent a non-finite value
    focus_score: Optional[float]
    classification_label: str = ""
    histogram: Tuple[int, ...] = ()

    @classmethod
    def from_payload(cls, data):
        image_id = _require_id(data, "Result response")
        label = pick(data, "classification_label", "classificationLabel", default="")
        if not isinstance(label, str):
            raise DecodeFailure(f"classification_label is not a string: {label!r}")
        return cls(
            image_id=image_id,
            intensity_average=finite_or_none(
                pick(data, "intensity_average", "intensityAverage"), "intensity_average"),
            focus_score=finite_or_none(
                pick(data, "focus_score", "focusScore"), "focus_score"),
            classification_label=label,
            histogram=_decode_histogram(pick(data, "histogram")),
        )


# ─── Reconciled pair ─────────────────────────────────────────────

@dataclass(frozen=True)
class ReconciledUpdate:
    image_id: str
    captured_at: datetime
    image_bytes: bytes = field(repr=False)
    intensity_average: Optional[float] = None
    focus_score: Optional[float] = None
    classification_label: str = ""
    histogram: Tuple[int, ...] = ()

    @classmethod
    def from_records(cls, image, result):
        """Pair an image with its analysis. Ids must match."""
        if image.image_id != result.image_id:
            raise DesyncFailure(image.image_id, result.image_id)
        return cls(
            image_id=image.image_id,
            captured_at=image.captured_at,
            image_bytes=image.image_bytes,
            intensity_average=result.intensity_average,
            focus_score=result.focus_score,
            classification_label=result.classification_label,
            histogram=result.histogram,
        )

    def to_dict(self):
        return {
            "imageId": self.image_id,
            "capturedAt": format_timestamp(self.captured_at),
            "imageDataBase64": base64.b64encode(self.image_bytes).decode("ascii"),
            "intensityAverage": self.intensity_average,
            "focusScore": self.focus_score,
            "classificationLabel": self.classification_label,
            "histogram": list(self.histogram),
        }

    @classmethod
    def from_dict(cls, data):
        image = ImageRecord.from_payload(data)
        result = ResultRecord.from_payload(data)
        return cls.from_records(image, result)
