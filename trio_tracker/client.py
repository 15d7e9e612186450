"""Host-side client that pushes session documents to the server.

Edits arrive faster than it is worth saving them, so `update()` only
remembers the newest document and (re)starts a quiet-window timer. When the
timer fires the latest document is PUT to the server with the write key.
Saves are last-write-wins on the server; the client never merges.
"""
import threading

import requests

DEFAULT_DEBOUNCE_SECONDS = 0.45
DEFAULT_REQUEST_TIMEOUT = 10


class SessionSyncError(Exception):
    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class SessionSyncClient:
    def __init__(self, base_url, session_id, write_key,
                 debounce_seconds=DEFAULT_DEBOUNCE_SECONDS,
                 request_timeout=DEFAULT_REQUEST_TIMEOUT,
                 http=None, on_error=None):
        self.base_url = str(base_url or '').rstrip('/')
        self.session_id = session_id
        self.write_key = write_key
        self.debounce_seconds = float(debounce_seconds)
        self.request_timeout = request_timeout
        self.http = http or requests.Session()
        self.on_error = on_error
        self.saves = 0
        self.last_error = None
        self._lock = threading.Lock()
        self._pending = None
        self._timer = None
        self._closed = False

    @property
    def session_url(self):
        return f'{self.base_url}/api/sessions/{self.session_id}'

    def update(self, doc):
        """Schedule `doc` to be saved once edits pause for the debounce window."""
        with self._lock:
            if self._closed:
                raise SessionSyncError('Sync client is closed')
            self._pending = doc
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.debounce_seconds, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def _take_pending(self):
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            doc, self._pending = self._pending, None
        return doc

    def _fire(self):
        try:
            self.flush()
        except SessionSyncError as exc:
            self.last_error = exc
            if self.on_error:
                self.on_error(exc)

    def flush(self):
        """Save the pending document now. Returns the server payload, or None if idle."""
        doc = self._take_pending()
        if doc is None:
            return None
        return self.save(doc)

    def save(self, doc):
        try:
            response = self.http.put(
                self.session_url,
                json={'doc': doc},
                headers={'X-Write-Key': self.write_key},
                timeout=self.request_timeout,
            )
        except requests.RequestException as exc:
            raise SessionSyncError(f'Session save failed: {exc}') from exc

        if response.status_code != 200:
            try:
                detail = (response.json() or {}).get('error')
            except ValueError:
                detail = None
            raise SessionSyncError(
                detail or f'Session save failed with status {response.status_code}',
                status_code=response.status_code,
            )
        self.saves += 1
        try:
            return response.json()
        except ValueError as exc:
            raise SessionSyncError(
                'Session save returned an unreadable response',
                status_code=response.status_code,
            ) from exc

    def close(self, flush=True):
        """Stop the timer, optionally saving whatever is still pending."""
        if flush:
            result = self.flush()
        else:
            self._take_pending()
            result = None
        with self._lock:
            self._closed = True
        return result
