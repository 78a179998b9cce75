"""
Target-level changes: sub-assets, asset versions and review status.

Like the thread functions, these return new target objects.
"""

from typing import Iterable, Optional

from .approval import drop_approval
from .errors import InvalidCommentError, NotFoundError
from .models import (
    TARGET_CLASSES,
    AnnotationTarget,
    AssetVersion,
    ReviewStatus,
    SubAsset,
    TargetType,
    new_id,
    normalize_page_path,
)

SUB_ASSET_PREFIXES = {
    TargetType.WEBSITE: "page",
    TargetType.MOCKUP: "img",
    TargetType.VIDEO: "vid",
}


def make_sub_asset(
    target_type: TargetType,
    name: str,
    url: str,
    asset_id: Optional[str] = None,
) -> SubAsset:
    if target_type == TargetType.WEBSITE:
        url = normalize_page_path(url)
    return SubAsset(id=asset_id or new_id(SUB_ASSET_PREFIXES[target_type]), name=name or url, url=url)


def create_target(
    target_type: TargetType,
    name: str,
    project_id: str = "",
    description: str = "",
    asset_url: str = "",
    created_by: str = "anonymous",
    assets: Iterable[dict] = (),
    url: str = "",
    target_id: Optional[str] = None,
) -> AnnotationTarget:
    """
    Build a new target with its initial sub-assets.

    Args:
        target_type: website, mockup or video
        name: Display name
        assets: Dicts with "name", "url" and optional "id"
        url: Site URL (websites only)
    """
    if not name or not name.strip():
        raise InvalidCommentError("Target name is required")
    target_type = TargetType(target_type)
    cls = TARGET_CLASSES[target_type]
    sub_assets = [
        make_sub_asset(target_type, a.get("name", ""), a.get("url", ""), a.get("id"))
        for a in assets
    ]
    kwargs = {
        "id": target_id or new_id(target_type.value),
        "name": name.strip(),
        "project_id": project_id,
        "description": description,
        "asset_url": asset_url,
        "created_by": created_by,
        cls.sub_asset_field: sub_assets,
    }
    if target_type == TargetType.WEBSITE:
        kwargs["url"] = url or asset_url
    return cls(**kwargs)


def add_sub_asset(
    target: AnnotationTarget,
    name: str,
    url: str,
    asset_id: Optional[str] = None,
) -> tuple[AnnotationTarget, SubAsset]:
    """Append a page, image or video asset."""
    asset = make_sub_asset(target.target_type, name, url, asset_id)
    if target.find_sub_asset(asset.id) is not None:
        raise InvalidCommentError(f"Sub-asset '{asset.id}' already exists")
    assets = list(target.sub_assets) + [asset]
    return target.evolve(**{target.sub_asset_field: assets}), asset


def remove_sub_asset(target: AnnotationTarget, asset_id: str) -> AnnotationTarget:
    """Drop a sub-asset and its approval entry. Comments are handled by the caller."""
    if target.find_sub_asset(asset_id) is None:
        raise NotFoundError(target.sub_asset_field[:-1], asset_id)
    assets = [a for a in target.sub_assets if a.id != asset_id]
    return drop_approval(target, asset_id).evolve(**{target.sub_asset_field: assets})


# =============================================================================
# Versions
# =============================================================================

def list_versions(target: AnnotationTarget) -> list[AssetVersion]:
    """Version history; targets that were never re-uploaded report their asset as v1."""
    if target.versions:
        return list(target.versions)
    return [AssetVersion(
        version_number=target.version or 1,
        asset_url=target.asset_url,
        created_by=target.created_by,
        created_at=target.created_at,
        notes="Initial version",
    )]


def add_version(
    target: AnnotationTarget,
    asset_url: str,
    user_id: str,
    notes: str = "",
) -> AnnotationTarget:
    """Upload a new revision and make it current."""
    if not asset_url:
        raise InvalidCommentError("Asset URL is required")
    versions = list_versions(target)
    number = max(v.version_number for v in versions) + 1
    versions.append(AssetVersion(number, asset_url, user_id, notes=notes))
    return target.evolve(version=number, asset_url=asset_url, versions=versions)


def switch_version(target: AnnotationTarget, version_number: int) -> AnnotationTarget:
    for version in list_versions(target):
        if version.version_number == version_number:
            return target.evolve(version=version_number, asset_url=version.asset_url)
    raise NotFoundError("version", str(version_number))


def set_review_status(target: AnnotationTarget, status: ReviewStatus) -> AnnotationTarget:
    return target.evolve(status=ReviewStatus(status))
