import os
import time
from flask import Flask
from models import db
from dotenv import load_dotenv

load_dotenv()

app = Flask(__name__)
app.config['MONGO_URI'] = os.getenv('MONGO_URI')
app.config['MONGO_DBNAME'] = os.getenv('MONGO_DBNAME', 'timetable')

db.init_app(app)

with app.app_context():
    print("Creating MongoDB indexes...")
    start = time.time()
    # unique natural keys plus the lookups used by generation
    db.create_all()
    print(f"Done in {time.time() - start:.2f}s")
