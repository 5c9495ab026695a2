from flask import Flask, request, jsonify, g, make_response
from pyinstrument import Profiler
from pydantic import ValidationError
from pymongo.errors import BulkWriteError, DuplicateKeyError
from werkzeug.exceptions import HTTPException
from datetime import datetime
import time
import os

from dotenv import load_dotenv

from cache import cache_response, invalidate_cache
from catalogue import generate_timetable, populate_timetable
from csv_processor import process_upload_stream
from importers import IMPORT_SPECS, import_rows
from models import db, ENTITY_MODELS, Registration, Section, Teacher, Timetable
from scheduler import SchedulingError, sort_time_slots
from schemas import (
    ENTITY_SCHEMAS,
    GenerateTimetablePayload,
    format_errors,
    validate_payload,
    validate_update,
)

# Load environment variables from .env file
load_dotenv()

app = Flask(__name__)
app.config['MONGO_URI'] = os.getenv('MONGO_URI')
app.config['MONGO_DBNAME'] = os.getenv('MONGO_DBNAME', 'timetable')
app.config['MONGO_TIMEOUT_MS'] = int(os.getenv('MONGO_TIMEOUT_MS', 8000))
app.config['SECRET_KEY'] = os.getenv('SECRET_KEY', 'fallback-secret-key')
app.config['GENERATOR_VERBOSE'] = os.getenv('GENERATOR_VERBOSE', '0') == '1'

LABELS = {
    'teachers': 'Teacher',
    'rooms': 'Room',
    'labs': 'Lab',
    'sections': 'Section',
    'timeslots': 'Time slot',
    'registrations': 'Registration',
    'timetables': 'Timetable',
}
# field that must be unique per entity, with the message returned on a clash
UNIQUE_FIELDS = {
    'teachers': ('email', 'Teacher email already exists'),
    'rooms': ('room_number', 'Room number already exists'),
    'labs': ('lab_number', 'Lab number already exists'),
    'sections': ('section_name', 'Section name already exists'),
}
# catalogue entries are deactivated, never removed
SOFT_DELETE = {'teachers', 'rooms', 'labs', 'sections', 'timeslots'}
CATALOGUE_ENTITIES = ('teachers', 'rooms', 'labs', 'sections', 'timeslots', 'registrations')


# Profiling Middleware
@app.before_request
def before_request():
    request._start_time = time.time()

    if 'profile' in request.args:
        g.profiler = Profiler()
        g.profiler.start()


@app.after_request
def after_request(response):
    if hasattr(request, '_start_time'):
        elapsed = time.time() - request._start_time
        app.logger.info(f"[{request.remote_addr}] {request.method} {request.path} {elapsed:.3f}s")
        response.headers["X-Response-Time"] = f"{elapsed:.3f}s"

    if hasattr(g, 'profiler'):
        g.profiler.stop()
        return make_response(g.profiler.output_html())

    return response


# --------------------------------------------------------------------- #
# Error handling
# --------------------------------------------------------------------- #
@app.errorhandler(ValidationError)
def handle_validation_error(exc):
    return jsonify({'errors': format_errors(exc)}), 400


@app.errorhandler(DuplicateKeyError)
@app.errorhandler(BulkWriteError)
def handle_duplicate_key(exc):
    db.session.rollback()
    return jsonify({'message': 'Duplicate value for a unique field'}), 400


@app.errorhandler(HTTPException)
def handle_http_error(exc):
    return jsonify({'message': exc.description}), exc.code


@app.errorhandler(Exception)
def handle_unexpected_error(exc):
    db.session.rollback()
    app.logger.exception(f"Unhandled error on {request.method} {request.path}")
    return jsonify({'message': str(exc)}), 500


def _json_body():
    return request.get_json(silent=True) or {}


def _not_found(entity):
    return jsonify({'message': f'{LABELS[entity]} not found'}), 404


def _unique_clash(entity, data, own_id=None):
    field_spec = UNIQUE_FIELDS.get(entity)
    if not field_spec:
        return None
    field, message = field_spec
    existing = ENTITY_MODELS[entity].query.filter_by(**{field: data[field]}).first()
    if existing is not None and existing.id != own_id:
        return message
    return None


def _missing_references(entity, data):
    if entity != 'registrations':
        return None
    if Section.query.get(data['section_id']) is None:
        return 'Section not found'
    if Teacher.query.get(data['teacher_id']) is None:
        return 'Teacher not found'
    return None


# --------------------------------------------------------------------- #
# Catalogue CRUD
# --------------------------------------------------------------------- #
def list_documents(entity):
    model = ENTITY_MODELS[entity]
    query = model.query
    if entity in SOFT_DELETE:
        query = query.filter_by(is_active=True)
    if entity == 'registrations':
        if request.args.get('status'):
            query = query.filter_by(status=request.args['status'].capitalize())
        if request.args.get('section_id'):
            query = query.filter_by(section_id=int(request.args['section_id']))
    docs = query.order_by('id').all()
    if entity == 'timeslots':
        docs = sort_time_slots(docs)
    return jsonify([d.to_json() for d in docs])


def get_document(entity, doc_id):
    doc = ENTITY_MODELS[entity].query.get(doc_id)
    if doc is None:
        return _not_found(entity)
    return jsonify(doc.to_json())


def create_document(entity):
    data = validate_payload(ENTITY_SCHEMAS[entity], _json_body())
    message = _unique_clash(entity, data) or _missing_references(entity, data)
    if message:
        return jsonify({'message': message}), 400

    doc = ENTITY_MODELS[entity](**data)
    db.session.add(doc)
    db.session.commit()
    invalidate_cache('timetables')
    return jsonify(doc.to_json()), 201


def update_document(entity, doc_id):
    doc = ENTITY_MODELS[entity].query.get(doc_id)
    if doc is None:
        return _not_found(entity)

    data = validate_update(ENTITY_SCHEMAS[entity], doc.to_dict(), _json_body())
    message = _unique_clash(entity, data, own_id=doc.id) or _missing_references(entity, data)
    if message:
        return jsonify({'message': message}), 400

    doc.update(**data)
    doc.save()
    invalidate_cache('timetables')
    return jsonify(doc.to_json())


def delete_document(entity, doc_id):
    model = ENTITY_MODELS[entity]
    doc = model.query.get(doc_id)
    if doc is None:
        return _not_found(entity)

    if entity in SOFT_DELETE:
        doc.is_active = False
        doc.save()
    else:
        model.query.filter_by(id=doc_id).delete()
    invalidate_cache('timetables')
    return jsonify({'message': f'{LABELS[entity]} deleted successfully'})


def import_documents(entity):
    upload = request.files.get('file')
    if not upload:
        return jsonify({'message': 'No file uploaded'}), 400
    try:
        result = import_rows(entity, process_upload_stream(upload, chunk_size=1000))
    except ValueError as exc:
        db.session.rollback()
        return jsonify({'message': str(exc)}), 400
    invalidate_cache('timetables')
    return jsonify({'success': True, **result})


for _entity in CATALOGUE_ENTITIES:
    _base = f'/api/{_entity}'
    app.add_url_rule(_base, f'{_entity}_list', lambda e=_entity: list_documents(e), methods=['GET'])
    app.add_url_rule(_base, f'{_entity}_create', lambda e=_entity: create_document(e), methods=['POST'])
    app.add_url_rule(f'{_base}/<int:doc_id>', f'{_entity}_get',
                     lambda doc_id, e=_entity: get_document(e, doc_id), methods=['GET'])
    app.add_url_rule(f'{_base}/<int:doc_id>', f'{_entity}_update',
                     lambda doc_id, e=_entity: update_document(e, doc_id), methods=['PUT'])
    app.add_url_rule(f'{_base}/<int:doc_id>', f'{_entity}_delete',
                     lambda doc_id, e=_entity: delete_document(e, doc_id), methods=['DELETE'])
    if _entity in IMPORT_SPECS:
        app.add_url_rule(f'{_base}/import', f'{_entity}_import',
                         lambda e=_entity: import_documents(e), methods=['POST'])


def _set_registration_status(doc_id, status):
    registration = Registration.query.get(doc_id)
    if registration is None:
        return _not_found('registrations')
    registration.status = status
    registration.save()
    return jsonify(registration.to_json())


@app.route('/api/registrations/<int:doc_id>/approve', methods=['PATCH'])
def approve_registration(doc_id):
    return _set_registration_status(doc_id, 'Approved')


@app.route('/api/registrations/<int:doc_id>/reject', methods=['PATCH'])
def reject_registration(doc_id):
    return _set_registration_status(doc_id, 'Rejected')


# --------------------------------------------------------------------- #
# Timetables
# --------------------------------------------------------------------- #
@app.route('/api/timetables', methods=['GET'])
@cache_response(ttl=300, prefix='timetables')
def list_timetables():
    timetables = Timetable.query.order_by('id').all()
    return jsonify([populate_timetable(t) for t in timetables])


@app.route('/api/timetables/<int:timetable_id>', methods=['GET'])
@cache_response(ttl=300, prefix='timetables')
def get_timetable(timetable_id):
    timetable = Timetable.query.get(timetable_id)
    if timetable is None:
        return _not_found('timetables')
    return jsonify(populate_timetable(timetable))


@app.route('/api/timetables/generate', methods=['POST'])
def generate_timetable_route():
    payload = GenerateTimetablePayload.model_validate(_json_body())
    try:
        timetable = generate_timetable(
            payload.name,
            payload.semester,
            payload.academic_year,
            payload.sections,
            config={'verbose': app.config['GENERATOR_VERBOSE']},
        )
    except (SchedulingError, ValueError) as exc:
        return jsonify({'message': str(exc)}), 400

    invalidate_cache('timetables')
    return jsonify(populate_timetable(timetable)), 201


@app.route('/api/timetables/<int:timetable_id>', methods=['PUT'])
def update_timetable(timetable_id):
    timetable = Timetable.query.get(timetable_id)
    if timetable is None:
        return _not_found('timetables')
    data = validate_update(ENTITY_SCHEMAS['timetables'], timetable.to_dict(), _json_body())
    timetable.update(**data)
    timetable.save()
    invalidate_cache('timetables')
    return jsonify(populate_timetable(timetable))


@app.route('/api/timetables/<int:timetable_id>', methods=['DELETE'])
def delete_timetable(timetable_id):
    return delete_document('timetables', timetable_id)


@app.route('/api/timetables/<int:timetable_id>/publish', methods=['PATCH'])
def publish_timetable(timetable_id):
    timetable = Timetable.query.get(timetable_id)
    if timetable is None:
        return _not_found('timetables')
    timetable.status = 'Published'
    timetable.save()
    invalidate_cache('timetables')
    return jsonify(populate_timetable(timetable))


# --------------------------------------------------------------------- #
# Service endpoints
# --------------------------------------------------------------------- #
@app.route('/')
def index():
    return jsonify({'message': 'Timetable Scheduler API is running!'})


@app.route('/health')
def health_check():
    """
    Health check endpoint for monitoring and load balancers.
    Returns 200 OK if application is healthy.
    """
    try:
        db._db.command('ping')
        return jsonify({
            'status': 'healthy',
            'service': 'Timetable Scheduler',
            'database': 'connected',
            'timestamp': datetime.now().isoformat()
        }), 200
    except Exception as e:
        return jsonify({
            'status': 'unhealthy',
            'service': 'Timetable Scheduler',
            'database': 'disconnected',
            'error': str(e),
            'timestamp': datetime.now().isoformat()
        }), 503


# Initialize our MongoDB-backed db compatibility layer
db.init_app(app)

with app.app_context():
    db.create_all()


if __name__ == '__main__':
    app.run(host='0.0.0.0', port=int(os.getenv('PORT', 5000)), debug=os.getenv('FLASK_DEBUG', '0') == '1')
