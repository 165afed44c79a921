# marketplace/schemas/common.py

from datetime import datetime
from typing import Annotated

from pydantic import AfterValidator, BaseModel
from pydantic.alias_generators import to_camel

from ..services.slots.intervals import as_utc

# Naive values (database rows, client input without offset) are UTC
UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


class CamelModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = {
        "from_attributes": True,
        "populate_by_name": True,
        "alias_generator": to_camel,
    }
