import itertools


def sequential_ids(prefix="id"):
    """Deterministic id factory: id1, id2, ..."""
    counter = itertools.count(1)
    return lambda: f"{prefix}{next(counter)}"
