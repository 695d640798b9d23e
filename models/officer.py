from enum import Enum

from sqlmodel import Field, SQLModel


class Role(str, Enum):
    ADMIN = "ADMIN"
    OFFICER = "OFFICER"


# Patrol roster entry; identity is asserted by picking from this list
class Officer(SQLModel, table=True):
    __tablename__ = "officer"

    id: str = Field(primary_key=True, description="Human-assigned officer code, e.g. OFF-001")
    name: str
    role: Role = Field(default=Role.OFFICER)

    @property
    def display_label(self) -> str:
        return f"{self.name} ({self.id})"
