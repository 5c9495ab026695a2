"""
Import a department description (years/divisions, teachers, labs) from JSON.

Usage: python import_json.py <file.json>
"""

import json
import os
import sys
from flask import Flask
from models import db
from importers import import_department_json
from dotenv import load_dotenv

load_dotenv()


def main(argv):
    if len(argv) < 2:
        print("Usage: python import_json.py <file.json>")
        return 1

    with open(argv[1], 'r', encoding='utf-8') as f:
        data = json.load(f)

    app = Flask(__name__)
    app.config['MONGO_URI'] = os.getenv('MONGO_URI')
    app.config['MONGO_DBNAME'] = os.getenv('MONGO_DBNAME', 'timetable')
    db.init_app(app)

    with app.app_context():
        summary = import_department_json(data)

    print(f"Imported {summary['registrations']} registrations for {summary['sections']} sections")
    return 0


if __name__ == '__main__':
    sys.exit(main(sys.argv))
