import datetime
import logging

logger = logging.getLogger(__name__)

def utcnow() -> datetime.datetime:
    """Naive UTC timestamp; every DateTime column stores naive UTC."""
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)

def today() -> datetime.date:
    return datetime.date.today()

def blank_to_none(value):
    """Strips strings and turns empty values into None."""
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value

def parse_int(value, default=None):
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else default
    try:
        return int(str(value).strip())
    except ValueError:
        try:
            number = float(str(value).strip())
        except ValueError:
            return default
        return int(number) if number.is_integer() else default

def chunked(iterable, size):
    """Yields lists of at most `size` items without materialising `iterable`."""
    chunk = []
    for item in iterable:
        chunk.append(item)
        if len(chunk) >= size:
            yield chunk
            chunk = []
    if chunk:
        yield chunk
