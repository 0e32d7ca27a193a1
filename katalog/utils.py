# katalog/utils.py
from uuid import UUID


def is_uuid(value) -> bool:
    try:
        UUID(str(value))
        return True
    except (TypeError, ValueError):
        return False
