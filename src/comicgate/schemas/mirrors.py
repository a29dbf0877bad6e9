"""Mirror pool and proxy schemas."""

from pydantic import BaseModel, Field

from comicgate.schemas.common import BaseSchema


class MirrorListResponse(BaseModel):
    bases: list[str] = Field(..., description="Mirror bases in pool order")
    current: str | None = Field(None, description="Base tried first by the next request")
    index: int = Field(..., ge=0, description="Rotation cursor")


class MirrorLatency(BaseModel):
    """One row of the latency report."""

    base: str
    ms: int = Field(..., description="Elapsed milliseconds, including failures")
    ok: bool
    status: int | None = Field(None, description="HTTP status when a response arrived")


class ProxyUpdate(BaseSchema):
    proxy: str | None = Field(
        None, description="Proxy URL such as socks5://127.0.0.1:1080; blank clears it"
    )


class ProxyState(BaseModel):
    proxy: str | None
