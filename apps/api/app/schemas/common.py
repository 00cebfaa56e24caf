from pydantic import BaseModel, Field, field_validator

from app.schemas.validators import sanitize_text


class LocationPayload(BaseModel):
    address: str | None = Field(default=None, max_length=500)
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)

    @field_validator("address")
    @classmethod
    def clean_address(cls, value: str | None) -> str | None:
        return sanitize_text(value)
