import os
import json
import hashlib
from functools import wraps
from flask import request, jsonify
import redis

# DB 1 keeps cached views apart from anything else sharing the server
redis_url = os.getenv('REDIS_URL', 'redis://localhost:6379/1')
_client = None
_checked = False


def get_redis():
    """Connect on first use; returns None when Redis is unreachable."""
    global _client, _checked
    if _checked:
        return _client
    _checked = True
    try:
        candidate = redis.from_url(redis_url, socket_connect_timeout=1)
        candidate.ping()
        _client = candidate
        print("[Cache] Redis connected successfully")
    except redis.RedisError as e:
        print(f"[Cache] Redis not available: {e}")
        print("[Cache] Running in no-cache mode")
        _client = None
    return _client


def get_cache_version(prefix):
    """Get the current version for a cache prefix."""
    client = get_redis()
    if client is None:
        return "1"
    try:
        v = client.get(f"version:{prefix}")
    except redis.RedisError:
        return "1"
    return v.decode('utf-8') if v else "1"


def generate_cache_key(prefix, *args, **kwargs):
    """Build a key from prefix version, request path, query string and view args."""
    key_parts = [prefix, get_cache_version(prefix), request.path]
    if request.args:
        key_parts.append(json.dumps(dict(request.args), sort_keys=True))
    for arg in args:
        key_parts.append(str(arg))
    if kwargs:
        key_parts.append(json.dumps(kwargs, sort_keys=True, default=str))

    key_str = "|".join(key_parts)
    return f"cache:{hashlib.sha256(key_str.encode()).hexdigest()}"


def invalidate_cache(*prefixes):
    """Invalidate every key under the given prefixes by bumping their version."""
    client = get_redis()
    if client is None:
        return
    for prefix in prefixes:
        try:
            client.incr(f"version:{prefix}")
            print(f"[Cache] Invalidated prefix: {prefix}")
        except redis.RedisError as e:
            print(f"[Cache] Invalidation failed: {e}")


def cache_response(ttl=300, prefix='view'):
    """
    Decorator caching successful JSON GET responses in Redis.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            client = get_redis()
            if client is None or request.method != 'GET' or 'profile' in request.args:
                return f(*args, **kwargs)

            cache_key = generate_cache_key(prefix, *args, **kwargs)
            try:
                cached = client.get(cache_key)
                if cached:
                    return jsonify(json.loads(cached))
            except redis.RedisError as e:
                print(f"[Cache] Read error: {e}")

            response = f(*args, **kwargs)
            status = 200
            if isinstance(response, tuple):
                response, status = response[0], response[1]
            if status != 200:
                return response, status

            try:
                payload = response.get_json() if hasattr(response, 'get_json') else response
                client.setex(cache_key, ttl, json.dumps(payload))
            except (redis.RedisError, TypeError) as e:
                print(f"[Cache] Write error: {e}")
            return response
        return decorated_function
    return decorator
