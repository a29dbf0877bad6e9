"""Page planning, materialization and descrambling schemas."""

from pydantic import BaseModel, Field

from comicgate.schemas.common import BaseSchema


class PagePlan(BaseModel):
    """One page of a chapter in reading order."""

    url: str
    picture_name: str
    segments: int = Field(..., ge=0, description="Horizontal bands to reassemble")


class ChapterPages(BaseModel):
    chapter_id: str
    scramble_id: int
    pages: list[PagePlan]


class SegmentationRequest(BaseSchema):
    eps_id: int = Field(..., description="Chapter id the pictures belong to")
    scramble_id: int
    picture_names: list[str]


class MaterializeRequest(BaseSchema):
    url: str = Field(..., min_length=1)
    segments: int = Field(..., description="Segmentation count; <= 1 means unscrambled")
    aid: str | None = Field(None, description="Comic id used as the cache namespace")
    read_key: str | None = Field(None, description="Cancellation key of the read session")


class MaterializeResponse(BaseModel):
    path: str


class DescrambleRequest(BaseSchema):
    url: str = Field(..., min_length=1)
    segments: int


class ImagePayload(BaseModel):
    mime: str
    data_b64: str


class CancelRequest(BaseSchema):
    key: str = Field(..., min_length=1)


class CoverRequest(BaseSchema):
    url: str = Field(..., min_length=1)
