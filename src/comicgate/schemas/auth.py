"""Login request and user-info schemas."""

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from comicgate.schemas.common import BaseSchema


class LoginRequest(BaseSchema):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class UserInfo(BaseModel):
    """Fixed user shape returned by the login endpoint.

    Counters may arrive as numeric strings; blank optional counters read as 0.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    uid: Any
    username: str
    level_name: str
    level: int
    coin: int
    gender: str = ""
    favorites: int = Field(
        validation_alias=AliasChoices("album_favorites", "favorites")
    )
    can_favorites: int = Field(
        validation_alias=AliasChoices("album_favorites_max", "can_favorites")
    )
    exp: int = 0
    next_level_exp: int = Field(
        default=0, validation_alias=AliasChoices("nextLevelExp", "next_level_exp")
    )

    @field_validator("exp", "next_level_exp", mode="before")
    @classmethod
    def blank_as_zero(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return 0
        return v

    @field_validator("gender", mode="before")
    @classmethod
    def null_gender(cls, v: Any) -> Any:
        return "" if v is None else v


class LoginResult(BaseModel):
    user: UserInfo
    cookies: dict[str, str]
