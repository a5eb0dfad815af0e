# leadflow/schemas/base.py

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

class CamelModel(BaseModel):
    """
    Общая база схем: в JSON поля в camelCase (profilePic, assignedTo),
    в Python snake_case. Принимаются оба варианта.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )
