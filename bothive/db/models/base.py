from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

# Fields the store assigns; never accepted from callers on create.
SERVER_FIELDS = ("id", "created_at", "updated_at")


class DomainModel(BaseModel):
    """Base for entities serialized to API consumers with camelCase keys."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )
