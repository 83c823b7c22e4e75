from datetime import datetime, timezone


class SystemClock:
    """Naive UTC wall clock; every stored timestamp is naive UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)


class FixedClock:
    def __init__(self, when: datetime):
        self.when = when

    def now(self) -> datetime:
        return self.when

    def set(self, when: datetime):
        self.when = when

    def advance(self, delta):
        self.when = self.when + delta
        return self.when


def current_clock():
    from flask import current_app

    return current_app.extensions["booklend.clock"]


def now() -> datetime:
    return current_clock().now()
