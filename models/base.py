"""Base model for backend wire payloads (snake_case on the wire)."""

from pydantic import BaseModel, ConfigDict


class ApiModel(BaseModel):
    """Base class for every backend request / response model.

    Unknown keys are ignored so that new server fields never break decoding.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
    )


class ApiEnvelope(ApiModel):
    """Standard ``{success, message, data}`` response envelope."""

    success: bool
    message: str | None = None
