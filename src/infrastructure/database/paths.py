from __future__ import annotations

# Document keys:
#   artifacts/{app_id}/users/{uid}/profile/data          private profile
#   artifacts/{app_id}/public/data/all_clients/{uid}     public summary


def private_profile_path(app_id: str, identity: str) -> str:
    _check_segment(identity)
    return f"artifacts/{app_id}/users/{identity}/profile/data"


def public_collection_path(app_id: str) -> str:
    return f"artifacts/{app_id}/public/data/all_clients"


def public_summary_path(app_id: str, identity: str) -> str:
    _check_segment(identity)
    return f"{public_collection_path(app_id)}/{identity}"


def parent_of(path: str) -> str:
    return path.rsplit("/", 1)[0]


def leaf_of(path: str) -> str:
    return path.rsplit("/", 1)[-1]


def _check_segment(identity: str) -> None:
    if not identity or "/" in identity:
        raise ValueError(f"Invalid identity segment: {identity!r}")
