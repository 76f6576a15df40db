"""
Database initialisation script
Creates the tables and seeds services and therapists
Run from backend/: python init_db.py
"""
import sys
sys.path.insert(0, '.')

from hanami.database import SessionLocal, init_db
from hanami.models import Service, Therapist, TherapistService

INITIAL_SERVICES = [
    {"name": "Classic relaxing massage", "duration_minutes": 60, "price": 200},
    {"name": "Hot stone massage", "duration_minutes": 90, "price": 280},
    {"name": "Express back massage", "duration_minutes": 30, "price": 110},
    {"name": "Hydrating facial", "duration_minutes": 75, "price": 240},
    {"name": "Aromatherapy ritual", "duration_minutes": 120, "price": 390},
]

INITIAL_THERAPISTS = [
    {"name": "Anna Kowalska", "services": ["Classic relaxing massage", "Hot stone massage", "Express back massage"]},
    {"name": "Marta Nowak", "services": ["Hydrating facial", "Aromatherapy ritual", "Classic relaxing massage"]},
]


def seed():
    """Add the initial catalogue if it is empty"""
    db = SessionLocal()
    try:
        existing = db.query(Service).count()
        if existing > 0:
            print(f"Services already exist ({existing}), skipping...")
            return

        services = {}
        for service_data in INITIAL_SERVICES:
            service = Service(is_active=True, **service_data)
            db.add(service)
            services[service.name] = service
        db.flush()

        for therapist_data in INITIAL_THERAPISTS:
            therapist = Therapist(name=therapist_data["name"], is_active=True)
            db.add(therapist)
            db.flush()
            for name in therapist_data["services"]:
                db.add(TherapistService(therapist_id=therapist.id, service_id=services[name].id))

        db.commit()
        print(f"Added {len(INITIAL_SERVICES)} services and {len(INITIAL_THERAPISTS)} therapists")

    finally:
        db.close()


if __name__ == "__main__":
    print("Creating tables...")
    init_db()
    seed()
    print("\nDone. Start the server with: python -m uvicorn hanami.main:app --reload")
