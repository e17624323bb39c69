"""Remote key/value store.

The portal keeps all persistent state in a hosted realtime database addressed
by slash-delimited paths (``classes/10-M/gallery/img_1``). Services receive a
store instance explicitly; nothing in the package reaches for a global
database handle.

Two backends share the KeyValueStore contract:

* FirebaseStore: Firebase Realtime Database through ``firebase_admin.db``.
* MemoryStore: an in-process tree with change notification, used for local
  development (``STORE_BACKEND=memory``) and tests.
"""

import copy
import threading
from functools import wraps

import requests
from firebase_admin import db, exceptions
from google.auth.exceptions import GoogleAuthError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from portal.errors import RemoteUnavailableError
from portal.logging import get_logger

logger = get_logger(__name__)


def split_path(path):
    """Split a slash-delimited path into its non-empty segments."""
    return [part for part in str(path).strip('/').split('/') if part]


def join_path(*parts):
    return '/'.join(str(p).strip('/') for p in parts if str(p).strip('/'))


class KeyValueStore:
    """Contract every remote store backend implements.

    All methods raise RemoteUnavailableError when the remote side cannot be
    reached; callers are expected to degrade to the local cache or queue.
    """

    def get(self, path):
        """Return the value stored at ``path`` or None."""
        raise NotImplementedError

    def set(self, path, value):
        """Replace the value at ``path``. Setting None deletes it."""
        raise NotImplementedError

    def update(self, path, mapping):
        """Shallow-merge ``mapping`` into the node at ``path``."""
        raise NotImplementedError

    def delete(self, path):
        raise NotImplementedError

    def subscribe(self, path, callback):
        """Call ``callback(value)`` now and on every change under ``path``.

        Returns a zero-argument function that cancels the subscription.
        """
        raise NotImplementedError

    def check_connection(self):
        """Return True when a read round-trip to the store succeeds."""
        try:
            self.get('events/active')
        except RemoteUnavailableError:
            return False
        return True


# ---------------------------------------------------------------------------
# In-process backend
# ---------------------------------------------------------------------------

class MemoryStore(KeyValueStore):
    """Thread-safe in-memory tree with Firebase-like semantics.

    Empty maps and None values are not stored, so deleting the last child of
    a node removes the node as well.
    """

    def __init__(self, data=None):
        self._root = _prune(copy.deepcopy(data)) or {}
        self._lock = threading.RLock()
        self._listeners = {}
        self._next_token = 0
        self._offline = False

    def set_offline(self, offline=True):
        """Simulate losing (or regaining) the connection to the store."""
        self._offline = offline
        logger.info('memory_store_connectivity', offline=offline)

    @property
    def offline(self):
        return self._offline

    def _ensure_online(self, op, path):
        if self._offline:
            raise RemoteUnavailableError(f'{op} {path}: store is offline')

    def get(self, path):
        self._ensure_online('get', path)
        with self._lock:
            node = self._lookup(split_path(path))
            return copy.deepcopy(node)

    def set(self, path, value):
        self._ensure_online('set', path)
        parts = split_path(path)
        with self._lock:
            self._assign(parts, value)
        self._notify(parts)

    def update(self, path, mapping):
        self._ensure_online('update', path)
        if not isinstance(mapping, dict):
            raise TypeError('update() expects a mapping')
        parts = split_path(path)
        with self._lock:
            for key, value in mapping.items():
                self._assign(parts + split_path(key), value)
        self._notify(parts)

    def delete(self, path):
        self._ensure_online('delete', path)
        parts = split_path(path)
        with self._lock:
            self._assign(parts, None)
        self._notify(parts)

    def subscribe(self, path, callback):
        self._ensure_online('subscribe', path)
        parts = split_path(path)
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._listeners[token] = (parts, callback)
        callback(self.get(path))

        def unsubscribe():
            with self._lock:
                self._listeners.pop(token, None)

        return unsubscribe

    def _lookup(self, parts):
        node = self._root
        for part in parts:
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return node

    def _assign(self, parts, value):
        value = _prune(copy.deepcopy(value))
        if not parts:
            self._root = value if isinstance(value, dict) else {}
            return

        trail = []
        node = self._root
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                if value is None:
                    return
                child = {}
                node[part] = child
            trail.append((node, part))
            node = child

        if value is None:
            node.pop(parts[-1], None)
        else:
            node[parts[-1]] = value

        # drop parents left empty by the write
        for parent, key in reversed(trail):
            if parent[key]:
                break
            del parent[key]

    def _notify(self, parts):
        with self._lock:
            listeners = list(self._listeners.values())
        for listen_parts, callback in listeners:
            depth = min(len(parts), len(listen_parts))
            if parts[:depth] != listen_parts[:depth]:
                continue
            with self._lock:
                value = copy.deepcopy(self._lookup(listen_parts))
            callback(value)


def _prune(value):
    if isinstance(value, dict):
        pruned = {}
        for key, child in value.items():
            child = _prune(child)
            if child is not None:
                pruned[str(key)] = child
        return pruned or None
    return value


# ---------------------------------------------------------------------------
# Firebase Realtime Database backend
# ---------------------------------------------------------------------------

TRANSIENT_ERRORS = (exceptions.UnavailableError, exceptions.DeadlineExceededError)

# token refresh and raw transport failures surface outside FirebaseError
REMOTE_ERRORS = (exceptions.FirebaseError, GoogleAuthError, requests.RequestException)


def remote_call(fn):
    """Retry transient Firebase failures, then map errors to RemoteUnavailableError."""

    retried = retry(
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, max=4),
        reraise=True,
    )(fn)

    @wraps(fn)
    def wrapper(self, path, *args):
        try:
            return retried(self, path, *args)
        except REMOTE_ERRORS as e:
            logger.warning(
                'remote_call_failed',
                op=fn.__name__,
                path=path,
                transient=isinstance(e, TRANSIENT_ERRORS),
                error=str(e),
            )
            raise RemoteUnavailableError(f'{fn.__name__} {path}: {e}') from e

    wrapper.retry = retried.retry
    return wrapper


class FirebaseStore(KeyValueStore):
    """KeyValueStore backed by ``firebase_admin.db``."""

    def __init__(self, firebase_app=None):
        self._app = firebase_app

    def _ref(self, path):
        return db.reference('/' + join_path(path), app=self._app)

    @remote_call
    def get(self, path):
        return self._ref(path).get()

    @remote_call
    def set(self, path, value):
        if value is None:
            self._ref(path).delete()
        else:
            self._ref(path).set(value)

    @remote_call
    def update(self, path, mapping):
        self._ref(path).update(mapping)

    @remote_call
    def delete(self, path):
        self._ref(path).delete()

    @remote_call
    def subscribe(self, path, callback):
        ref = self._ref(path)

        def on_event(event):
            # events carry relative patches; hand listeners the whole node
            if event.event_type == 'put' and event.path == '/':
                callback(event.data)
                return
            try:
                callback(self.get(path))
            except RemoteUnavailableError:
                logger.warning('subscription_refresh_failed', path=path)

        registration = ref.listen(on_event)
        logger.info('subscribed', path=path)

        def unsubscribe():
            registration.close()
            logger.info('unsubscribed', path=path)

        return unsubscribe
