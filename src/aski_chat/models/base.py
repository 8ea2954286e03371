from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class AskiModel(BaseModel):
    """Base for REST models. Accepts the backend's camelCase keys and ignores extras."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )
