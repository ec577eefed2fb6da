#!/usr/bin/env python3
"""Seed the instrument catalogue teachers pick from during onboarding."""
import sys
from pathlib import Path

# Add the parent directory to the path so we can import the app
sys.path.insert(0, str(Path(__file__).parent.parent))

from tunetrails import create_app
from tunetrails.extensions import db
from tunetrails.models import Instrument

INSTRUMENTS = [
    ("Piano", "Keyboard"),
    ("Keyboard", "Keyboard"),
    ("Guitar", "Strings"),
    ("Bass", "Strings"),
    ("Violin", "Strings"),
    ("Cello", "Strings"),
    ("Ukulele", "Strings"),
    ("Nyatiti", "Strings"),
    ("Drums", "Percussion"),
    ("Percussion", "Percussion"),
    ("Djembe", "Percussion"),
    ("Kalimba", "Percussion"),
    ("Saxophone", "Wind"),
    ("Trumpet", "Wind"),
    ("Flute", "Wind"),
    ("Vocals", "Voice"),
]

def seed_instruments():
    app = create_app()

    with app.app_context():
        existing = {i.name.lower() for i in Instrument.query.all()}

        added = 0
        for name, category in INSTRUMENTS:
            if name.lower() in existing:
                continue
            db.session.add(Instrument(name=name, category=category))
            added += 1

        db.session.commit()
        print(f"Added {added} instruments ({len(existing)} already present)")

if __name__ == "__main__":
    seed_instruments()
