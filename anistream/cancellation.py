from threading import Event, Lock, Timer

from anistream.errors import ResolutionCancelled


class CancellationToken:
    """Explicit cancel signal passed down the resolution call chain."""

    def __init__(self):
        self._event = Event()
        self._lock = Lock()
        self._callbacks = []

    def cancel(self):
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def on_cancel(self, callback):
        """Run ``callback`` once when the token fires, immediately if it already has."""
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def cancel_after(self, seconds):
        """Start a daemon timer that cancels the token; None when ``seconds`` is not positive."""
        if not seconds or seconds <= 0:
            return None
        timer = Timer(seconds, self.cancel)
        timer.daemon = True
        timer.start()
        return timer

    @property
    def cancelled(self):
        return self._event.is_set()

    def raise_if_cancelled(self):
        if self._event.is_set():
            raise ResolutionCancelled()


def ensure_token(token):
    return token if token is not None else CancellationToken()
