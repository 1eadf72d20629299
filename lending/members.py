from django.conf import settings
from django.utils.module_loading import import_string

from .exceptions import ValidationError


def accept_any_member(member_id: int) -> bool:
    return member_id > 0


def get_member_directory():
    return import_string(settings.LENDING["MEMBER_DIRECTORY"])


def ensure_member(member_id: int, field: str = "member_id"):
    if not get_member_directory()(member_id):
        raise ValidationError({field: f"Member {member_id} is not a known member."})
