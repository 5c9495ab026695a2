"""
Seed teachers, rooms, sections and time slots from an existing timetable grid.

Usage: python import_excel.py <timetable.xlsx>
"""

import os
import sys
from flask import Flask
from models import db
from csv_processor import read_sheet_rows
from importers import import_timetable_grid
from dotenv import load_dotenv

load_dotenv()


def main(argv):
    if len(argv) < 2:
        print("Usage: python import_excel.py <timetable.xlsx>")
        return 1

    with open(argv[1], 'rb') as f:
        rows = read_sheet_rows(f)

    app = Flask(__name__)
    app.config['MONGO_URI'] = os.getenv('MONGO_URI')
    app.config['MONGO_DBNAME'] = os.getenv('MONGO_DBNAME', 'timetable')
    db.init_app(app)

    with app.app_context():
        counts = import_timetable_grid(rows)

    print(f"Created {counts['teachers']} teachers, {counts['rooms']} rooms, "
          f"{counts['sections']} sections and {counts['time_slots']} time slots")
    return 0


if __name__ == '__main__':
    sys.exit(main(sys.argv))
