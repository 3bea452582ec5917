"""
Pessoa model representing one person record transferred by the job.
"""

import re

from pydantic import BaseModel, ConfigDict, field_validator

_INTEGER_TEXT = re.compile(r"[+-]?[0-9]+")


class Pessoa(BaseModel):
    """
    One person record, decoded from a source line and inserted as one row.

    Field order is significant: it is the positional order of the source
    columns and of the sink columns.

    Attributes:
        name: Person name
        document: Document identifier (kept as text, leading zeros matter)
        email: Contact e-mail
        phone: Contact phone
        age: Age in years
    """

    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        json_schema_extra={
            "example": {
                "name": "Ana",
                "document": "111",
                "email": "ana@x.com",
                "phone": "555-0001",
                "age": 30,
            }
        },
    )

    name: str
    document: str
    email: str
    phone: str
    age: int

    @field_validator("age", mode="before")
    @classmethod
    def age_is_integer_text(cls, v):
        """Accept only plain decimal digits (optionally signed) when age comes as text"""
        if isinstance(v, str):
            v = v.strip()
            if not _INTEGER_TEXT.fullmatch(v):
                raise ValueError(f"age must be an integer, got {v!r}")
        return v
