"""Object key resolution from caller-supplied path templates.

Templates carry two placeholders: ``<user>`` (the caller's id) and
``<yyyy>`` (the current UTC year). The resolved key is then validated and,
when tenant isolation is on, confined to the caller's own prefix.
"""

import re
from datetime import datetime, timezone

from presigner.errors import AccessDenied, ValidationError
from presigner.models import CallerIdentity

USER_PLACEHOLDER = "<user>"
YEAR_PLACEHOLDER = "<yyyy>"

_PLACEHOLDER_RE = re.compile(r"<[^<>/]*>")
_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")
_MAX_KEY_BYTES = 1024


def resolve_object_key(
    template: str,
    caller: CallerIdentity,
    now: datetime,
    strict: bool = True,
) -> str:
    """Substitute the caller id and year into a path template.

    Every occurrence of each placeholder is replaced.

    Args:
        template: Path template from the request body.
        caller: The authenticated caller.
        now: The signing instant; its UTC year fills ``<yyyy>``.
        strict: Reject templates with placeholders other than the known two.

    Returns:
        The resolved object key.

    Raises:
        ValidationError: If ``strict`` and an unknown placeholder remains.
    """
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    year = f"{now.year:04d}"

    # Checked on the template, not the result: caller ids may contain '<'.
    if strict:
        unknown = [
            tok
            for tok in _PLACEHOLDER_RE.findall(template)
            if tok not in (USER_PLACEHOLDER, YEAR_PLACEHOLDER)
        ]
        if unknown:
            raise ValidationError(f"Unknown placeholder in path: {unknown[0]}")

    return template.replace(USER_PLACEHOLDER, caller.user_id).replace(YEAR_PLACEHOLDER, year)


def validate_object_key(key: str) -> None:
    """Validate a resolved object key.

    Raises:
        ValidationError: If the key is empty, absolute, has empty, '.' or
            '..' segments, contains control characters, or exceeds 1024
            bytes when UTF-8 encoded.
    """
    if not key:
        raise ValidationError("Object key must not be empty")
    if key.startswith("/"):
        raise ValidationError("Object key must not start with '/'")
    if _CONTROL_RE.search(key):
        raise ValidationError("Object key must not contain control characters")
    if len(key.encode("utf-8")) > _MAX_KEY_BYTES:
        raise ValidationError(f"Object key exceeds {_MAX_KEY_BYTES} bytes")
    for segment in key.split("/"):
        if segment in ("", ".", ".."):
            raise ValidationError("Object key contains an empty or relative segment")


def tenant_prefix_for(prefix_template: str, caller: CallerIdentity) -> str:
    """Resolve the namespace prefix owned by ``caller``."""
    return prefix_template.replace(USER_PLACEHOLDER, caller.user_id)


def enforce_tenant_prefix(key: str, caller: CallerIdentity, prefix_template: str) -> None:
    """Require ``key`` to live under the caller's own prefix.

    Raises:
        AccessDenied: If the key is outside the caller's namespace.
    """
    prefix = tenant_prefix_for(prefix_template, caller)
    if not key.startswith(prefix):
        raise AccessDenied("Path is outside the caller's namespace")
