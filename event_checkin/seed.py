from __future__ import annotations

from datetime import datetime, timedelta

from .database import Base, engine, SessionLocal
from .models import Event


def upsert_defaults() -> None:
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        defaults_events = [
            ("demo-main-stage", "Main Stage", 100, "Conference Hall A"),
            ("demo-workshop", "Evening Workshop", 30, "Room 2"),
        ]
        start = datetime.utcnow().replace(hour=9, minute=0, second=0, microsecond=0) + timedelta(days=7)
        for id_, title, seats, location in defaults_events:
            if not db.get(Event, id_):
                db.add(Event(id=id_, title=title, seats=seats, location=location, date=start, checkins=0))
        db.commit()
    finally:
        db.close()


def main() -> None:
    upsert_defaults()
    print("Seed complete.")


if __name__ == "__main__":
    main()
