# Built-in Checkpoints & Officers, used on first start and whenever the stored registry is unreadable
from typing import List

from db.session import create_db_and_tables, new_session
from models.checkpoint import Checkpoint
from models.officer import Officer, Role


def default_checkpoints() -> List[Checkpoint]:
    return [
        Checkpoint(
            id="cp-001",
            name="Main Entrance Gate",
            latitude=13.7563,
            longitude=100.5018,
            allowed_radius_meters=100.0,
            schedule={
                "type": "FIXED_TIME",
                "fixedTimes": ["08:00", "12:00", "16:00", "20:00"],
                "toleranceMinutes": 10,
            },
        ),
        Checkpoint(
            id="cp-002",
            name="Server Room B2",
            latitude=13.7565,
            longitude=100.5020,
            allowed_radius_meters=50.0,
            schedule={"type": "INTERVAL", "intervalMinutes": 60},
        ),
    ]


def default_officers() -> List[Officer]:
    return [
        Officer(id="OFF-001", name="Somsak Jaidee", role=Role.OFFICER),
        Officer(id="OFF-002", name="Mana Meemark", role=Role.OFFICER),
    ]


def seed_defaults():
    from services.registry import ensure_registries

    create_db_and_tables()
    ensure_registries(new_session)
    print("Registries checked; defaults inserted where missing")


if __name__ == "__main__":
    seed_defaults()
