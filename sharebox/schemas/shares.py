"""
Schemas for share and item endpoints.

Share, PublicShare, Item and Options from sharebox.storage.models are
returned as-is; this module only holds the request bodies and the small
response payloads that have no storage counterpart.
"""
from pydantic import BaseModel, Field

from sharebox.storage.models import Exposure, Options


class ShareOptionsRequest(BaseModel):
    """Options sent when creating or updating a share.

    Omitted fields take the configured defaults on creation and are reset
    to their default values on update, since options are replaced wholesale.
    """

    validity: int | None = Field(default=None, ge=0)
    exposure: Exposure | None = None
    description: str | None = None
    message: str | None = None

    def to_options(self, defaults: Options) -> Options:
        values = defaults.model_dump()
        values.update(self.model_dump(exclude_none=True))
        return Options(**values)


class MessageResponseData(BaseModel):
    message: str
