"""Per sub-asset approval tracking."""

from typing import Optional

from .errors import NotFoundError
from .models import AnnotationTarget


def is_subdivided(target: AnnotationTarget) -> bool:
    """Targets with pages/images/video assets approve each one separately."""
    return bool(target.sub_assets)


def is_approved(target: AnnotationTarget, sub_asset_id: Optional[str] = None) -> bool:
    if not is_subdivided(target):
        return target.is_approved
    return sub_asset_id is not None and sub_asset_id in target.approved_ids


def toggle_approval(target: AnnotationTarget, sub_asset_id: Optional[str] = None) -> AnnotationTarget:
    """
    Flip approval of one sub-asset (or of the whole target when it has none).

    Toggling twice restores the original state.

    Raises:
        NotFoundError: If the sub-asset is missing from a subdivided target
    """
    if not is_subdivided(target):
        return target.evolve(is_approved=not target.is_approved)
    if sub_asset_id is None or target.find_sub_asset(sub_asset_id) is None:
        raise NotFoundError(target.sub_asset_field[:-1], sub_asset_id or "")
    if sub_asset_id in target.approved_ids:
        approved = [i for i in target.approved_ids if i != sub_asset_id]
    else:
        approved = target.approved_ids + [sub_asset_id]
    return target.evolve(approved_ids=approved)


def drop_approval(target: AnnotationTarget, sub_asset_id: str) -> AnnotationTarget:
    return target.evolve(approved_ids=[i for i in target.approved_ids if i != sub_asset_id])


def approval_progress(target: AnnotationTarget) -> tuple[int, int]:
    """(approved, total), computed on read. Stale approved ids are ignored."""
    if not is_subdivided(target):
        return (1 if target.is_approved else 0), 1
    asset_ids = {asset.id for asset in target.sub_assets}
    approved = len(asset_ids.intersection(target.approved_ids))
    return approved, len(asset_ids)


def percent_complete(target: AnnotationTarget) -> float:
    approved, total = approval_progress(target)
    return round(approved / total * 100, 1) if total else 0.0
