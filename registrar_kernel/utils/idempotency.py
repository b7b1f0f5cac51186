"""
Idempotency key generation utilities.

Idempotency keys ensure that an observer re-run for the same transition
finds the record it created the first time instead of creating a second.
"""

from uuid import UUID


def generate_idempotency_key(
    producer: str,
    source_id: UUID | str,
    discriminator: str,
) -> str:
    """
    Generate an idempotency key for a derived record.

    Format: producer:source_id:discriminator

    The key is stored on the derived record and has a unique constraint.

    Args:
        producer: Handler that derives the record (e.g. "grade_publication").
        source_id: Id of the record whose transition triggered the handler.
        discriminator: What distinguishes sibling derived records
            (a student id, a target status).

    Example:
        >>> generate_idempotency_key("grade_publication", uuid, "STU001")
        "grade_publication:550e8400-e29b-41d4-a716-446655440000:STU001"
    """
    return f"{producer}:{source_id}:{discriminator}"


def parse_idempotency_key(key: str) -> tuple[str, str, str]:
    """
    Parse an idempotency key into its components.

    Returns:
        Tuple of (producer, source_id, discriminator).

    Raises:
        ValueError: If key format is invalid.
    """
    parts = key.split(":", 2)
    if len(parts) != 3:
        raise ValueError(f"Invalid idempotency key format: {key}")
    return parts[0], parts[1], parts[2]
