from pymongo import MongoClient, ASCENDING, DESCENDING, ReplaceOne
from typing import Any, Dict


class _Session:
    def __init__(self, db):
        self._db = db
        self._added = []

    def add(self, obj):
        self._added.append(obj)

    def flush(self):
        ops = {}  # {collection_name: [operations]}

        for obj in list(self._added):
            coll_name = _get_collection_name(obj.__class__)
            ops.setdefault(coll_name, [])

            # Ensure integer id sequence
            if getattr(obj, 'id', None) is None:
                obj.id = get_next_id(self._db, coll_name)

            data = obj.to_dict()
            # _id is immutable once the document exists
            data.pop('_id', None)
            ops[coll_name].append(ReplaceOne({'id': obj.id}, data, upsert=True))

        for coll_name, operations in ops.items():
            if operations:
                try:
                    # ordered=False continues processing even if one fails
                    self._db[coll_name].bulk_write(operations, ordered=False)
                except Exception as e:
                    print(f"[MongoDB] Bulk write error in {coll_name}: {e}")
                    raise

    def commit(self):
        try:
            self.flush()
        finally:
            self._added.clear()

    def rollback(self):
        # No multi-document transactions; drop the pending operations
        self._added.clear()


class _DB:
    def __init__(self):
        self.client: MongoClient | None = None
        self._db = None
        self.session = None

    def init_app(self, app):
        self.init_uri(
            app.config.get('MONGO_URI'),
            app.config.get('MONGO_DBNAME', 'timetable'),
            int(app.config.get('MONGO_TIMEOUT_MS', 8000)),
        )

    def init_uri(self, uri, dbname='timetable', timeout_ms=8000):
        """Connect without a Flask app (command-line scripts)."""
        uri = uri or 'mongodb://localhost:27017'
        try:
            self.client = MongoClient(uri, serverSelectionTimeoutMS=timeout_ms)
            # Force DNS & initial server selection
            self.client.admin.command('ping')
        except Exception as e:
            print(f"[Mongo Init] Primary URI failed ({e}); falling back to localhost.")
            fallback = 'mongodb://localhost:27017'
            self.client = MongoClient(fallback, serverSelectionTimeoutMS=timeout_ms)
        self._db = self.client[dbname]
        self.session = _Session(self._db)

    def create_all(self):
        if self._db is None:
            return
        try:
            self._db['teacher'].create_index('email', unique=True)
            self._db['room'].create_index('room_number', unique=True)
            self._db['lab'].create_index('lab_number', unique=True)
            self._db['section'].create_index('section_name', unique=True)
            self._db['timeslot'].create_index([('day', ASCENDING), ('start_time', ASCENDING)])
            self._db['registration'].create_index([('section_id', ASCENDING), ('status', ASCENDING)])
            self._db['registration'].create_index([('semester', ASCENDING), ('academic_year', ASCENDING)])
            self._db['timetable'].create_index([('generated_at', DESCENDING)])
            for name in ('teacher', 'room', 'lab', 'section', 'timeslot', 'registration', 'timetable'):
                self._db[name].create_index('id', unique=True)
            print("[MongoDB] Indexes created successfully.")
        except Exception as e:
            print(f"[MongoDB] Index creation failed: {e}")

    def drop_all(self):
        if self._db is None:
            return
        for name in self._db.list_collection_names():
            self._db[name].delete_many({})
        print("[MongoDB] All collections cleared.")


db = _DB()


def _get_collection_name(cls):
    return cls.__name__.lower()


def get_next_id(db, name: str) -> int:
    counters = db['__counters__']
    res = counters.find_one_and_update({'_id': name}, {'$inc': {'seq': 1}}, upsert=True, return_document=True)
    return int(res['seq'])


class ColumnRef:
    def __init__(self, name: str):
        self.name = name

    def __str__(self):
        return self.name


class ModelMeta(type):
    def __getattr__(cls, item):
        # `Model.query` returns a fresh Query(model); other unknown class
        # attributes are column references usable in order_by()
        if item == 'query':
            return Query(cls)
        return ColumnRef(item)


class Query:
    def __init__(self, model_cls):
        self.model_cls = model_cls
        self._filter = {}
        self._sort = None

    def filter_by(self, **kwargs):
        self._filter.update(kwargs)
        return self

    def filter(self, criteria: Dict[str, Any]):
        """Merge raw Mongo criteria, e.g. {'section_id': {'$in': [1, 2]}}."""
        self._filter.update(criteria)
        return self

    def order_by(self, *attrs):
        # Support order_by(Model.field, Model.other) or order_by('field')
        sorts = []
        for attr in attrs:
            if isinstance(attr, str):
                sorts.append((attr, ASCENDING))
            elif hasattr(attr, 'name'):
                sorts.append((attr.name, ASCENDING))
            else:
                sorts.append((str(attr), ASCENDING))
        self._sort = sorts if sorts else None
        return self

    def _collection(self):
        return db._db[_get_collection_name(self.model_cls)]

    def all(self):
        cursor = self._collection().find(self._filter)
        if self._sort:
            cursor = cursor.sort(self._sort)
        return [self.model_cls(**doc) for doc in cursor]

    def first(self):
        doc = self._collection().find_one(self._filter, sort=self._sort)
        if not doc:
            return None
        return self.model_cls(**doc)

    def delete(self):
        return self._collection().delete_many(self._filter)

    def get(self, id_value):
        doc = self._collection().find_one({'id': id_value})
        if not doc:
            return None
        return self.model_cls(**doc)


class BaseModel(metaclass=ModelMeta):
    defaults: Dict[str, Any] = {}

    def __init__(self, **kwargs):
        for k, v in self.defaults.items():
            # copy mutable defaults so instances never share a list
            setattr(self, k, list(v) if isinstance(v, list) else v)
        for k, v in kwargs.items():
            setattr(self, k, v)

    # `query` is provided at the class level by `ModelMeta.__getattr__` so
    # callers can use `SomeModel.query.all()` or `SomeModel.query.first()`.

    def to_dict(self) -> Dict[str, Any]:
        d = self.__dict__.copy()
        # ObjectId is not JSON serializable
        if '_id' in d and d['_id'] is not None:
            d['_id'] = str(d['_id'])
        return d

    def to_json(self) -> Dict[str, Any]:
        """API representation: storage fields minus the Mongo _id."""
        d = self.to_dict()
        d.pop('_id', None)
        return d

    def update(self, **fields):
        for k, v in fields.items():
            setattr(self, k, v)
        return self

    def _save(self, mongo_db):
        coll = mongo_db[_get_collection_name(self.__class__)]
        if getattr(self, 'id', None) is None:
            self.id = get_next_id(mongo_db, _get_collection_name(self.__class__))
        data = self.to_dict()
        data.pop('_id', None)
        coll.replace_one({'id': self.id}, data, upsert=True)

    def save(self):
        """
        Save the current instance to the database.
        """
        self._save(db._db)


# --- Model definitions ---


class Teacher(BaseModel):
    defaults = {
        'department': None,
        'subjects': [],
        'max_hours_per_week': 40,
        'available_days': [],
        'available_time_slot_ids': [],
        'is_active': True,
    }

    def __repr__(self):
        return f'<Teacher {getattr(self, "name", None)}>'


class Room(BaseModel):
    defaults = {'room_type': 'Classroom', 'facilities': [], 'is_active': True}

    def __repr__(self):
        return f'<Room {getattr(self, "room_number", None)}>'


class Lab(BaseModel):
    defaults = {'equipment': [], 'software': [], 'is_active': True}

    def __repr__(self):
        return f'<Lab {getattr(self, "lab_number", None)}>'


class Section(BaseModel):
    defaults = {'subjects': [], 'class_teacher_id': None, 'is_active': True}

    def __repr__(self):
        return f'<Section {getattr(self, "section_name", None)} ({getattr(self, "department", "")})>'


class TimeSlot(BaseModel):
    defaults = {'slot_type': 'Lecture', 'is_active': True}

    @property
    def display_time(self):
        return f"{self.start_time} - {self.end_time}"

    def to_json(self):
        d = super().to_json()
        d['display_time'] = self.display_time
        return d

    def __repr__(self):
        return f'<TimeSlot {getattr(self, "day", None)} {getattr(self, "start_time", None)}>'


class Registration(BaseModel):
    defaults = {
        'room_id': None,
        'lab_id': None,
        'time_slot_ids': [],
        'status': 'Pending',
        'priority': 1,
    }

    def __repr__(self):
        subject = getattr(self, 'subject', None) or {}
        return f'<Registration {subject.get("code")} S{getattr(self, "section_id", None)} ({getattr(self, "status", None)})>'


class Timetable(BaseModel):
    defaults = {'section_ids': [], 'schedule': [], 'conflicts': [], 'status': 'Draft', 'generated_at': None}

    def __repr__(self):
        return f'<Timetable {getattr(self, "name", None)} ({getattr(self, "status", None)})>'


ENTITY_MODELS: Dict[str, type] = {
    'teachers': Teacher,
    'rooms': Room,
    'labs': Lab,
    'sections': Section,
    'timeslots': TimeSlot,
    'registrations': Registration,
    'timetables': Timetable,
}

