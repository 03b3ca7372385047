from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Request body base: accepts camelCase from clients, snake_case internally."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
