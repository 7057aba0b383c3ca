"""Patient identity helpers.

The appointment service cannot take a raw email as a path or query
component: the first ``.`` of the domain is replaced by ``,``. These
helpers are the only place that encoding is applied or undone.
"""

EMAIL_DOT_SENTINEL = ","


def encode_email(email: str) -> str:
    """
    Encode an email for use in an appointment service URL.

    Args:
        email: Plain email address (``a.b@c.edu``)

    Returns:
        Encoded email (``a.b@c,edu``), or the input unchanged if it has no domain
    """
    local, sep, domain = email.rpartition("@")
    if not sep:
        return email
    return f"{local}@{domain.replace('.', EMAIL_DOT_SENTINEL, 1)}"


def decode_email(email: str) -> str:
    """
    Undo :func:`encode_email`.

    Plain emails pass through untouched, so the appointment service may
    echo either form back to us.
    """
    local, sep, domain = email.rpartition("@")
    if not sep:
        return email
    return f"{local}@{domain.replace(EMAIL_DOT_SENTINEL, '.', 1)}"


def normalize_email(email: str | None) -> str | None:
    """Decode, trim and lowercase an email; blank values become None."""
    if email is None:
        return None
    cleaned = decode_email(email.strip())
    return cleaned.lower() or None


def normalize_identity(
    email: str | None,
    queue_id: str | None = None,
    namespace: str = "id",
) -> str:
    """
    Compute the deduplication key for a queue record.

    Args:
        email: Patient email, if the source reported one
        queue_id: Opaque id used when there is no email
        namespace: Prefix that keeps ids from different sources apart

    Returns:
        The normalized email, else ``"<namespace>:<queue_id>"``

    Raises:
        ValueError: If neither an email nor a queue id is available
    """
    normalized = normalize_email(email)
    if normalized:
        return normalized
    if queue_id is None or not str(queue_id).strip():
        raise ValueError("Record has neither an email nor a queue id")
    return f"{namespace}:{str(queue_id).strip()}"
