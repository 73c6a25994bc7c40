"""
Share and item data model.

Share records are persisted as JSON by sharebox.storage.metadata; the field
aliases below are the on-disk keys. size and count are aggregates derived
from the live item set and are rewritten after every item mutation.
"""
from datetime import datetime, timedelta
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sharebox.utils.datetime import ensure_aware, utcnow


class Exposure(str, Enum):
    """Which operations anonymous callers may perform on a share."""

    UPLOAD = "upload"
    DOWNLOAD = "download"
    BOTH = "both"


class Options(BaseModel):
    """User-editable share settings."""

    validity: int = Field(default=0, ge=0)
    """Number of days the share stays valid after creation, 0 for ever"""

    exposure: Exposure = Exposure.UPLOAD
    description: str = ""
    message: str = ""

    @classmethod
    def default(cls, validity_days: int = 7) -> "Options":
        return cls(validity=validity_days, exposure=Exposure.UPLOAD)

    @property
    def allows_anonymous_upload(self) -> bool:
        return self.exposure in (Exposure.UPLOAD, Exposure.BOTH)

    @property
    def allows_anonymous_download(self) -> bool:
        return self.exposure in (Exposure.DOWNLOAD, Exposure.BOTH)


class Share(BaseModel):
    """A named, owned container for items."""

    model_config = ConfigDict(populate_by_name=True)

    version: int = 1
    name: str
    owner: str = ""
    date_created: datetime = Field(default_factory=utcnow, alias="created")
    options: Options = Field(default_factory=Options)
    size: int = 0
    count: int = 0

    @field_validator("date_created")
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        return ensure_aware(value)

    def expires_at(self) -> datetime | None:
        if self.options.validity == 0:
            return None
        return self.date_created + timedelta(days=self.options.validity)

    def is_valid(self, now: datetime | None = None) -> bool:
        """
        Return True if the share has not expired.

        A validity of 0 never expires. Otherwise the share is valid while
        creation date plus validity days is strictly after now.
        """
        expires_at = self.expires_at()
        if expires_at is None:
            return True
        return expires_at > ensure_aware(now or utcnow())


class PublicOptions(BaseModel):
    exposure: Exposure
    message: str


class PublicShare(BaseModel):
    """What unauthenticated callers are allowed to see of a share."""

    name: str
    options: PublicOptions


def public_share(share: Share) -> PublicShare:
    return PublicShare(
        name=share.name,
        options=PublicOptions(
            exposure=share.options.exposure,
            message=share.options.message,
        ),
    )


def public_shares(shares: list[Share]) -> list[PublicShare]:
    return [public_share(share) for share in shares]


class ItemInfo(BaseModel):
    size: int
    date_modified: datetime


class Item(BaseModel):
    """A stored file, addressed by "<share>/<item>"."""

    path: str
    item_info: ItemInfo

    @property
    def name(self) -> str:
        return self.path.split("/", 1)[1]
