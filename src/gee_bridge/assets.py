"""
Earth Engine asset management.

Thin wrappers over ``ee.data`` for folders, listing, copy/move/delete,
properties, quota and access control.
"""

from __future__ import annotations

import logging

import ee

logger = logging.getLogger(__name__)

ASSET_TYPES = {
    "IMAGE": "Image",
    "IMAGE_COLLECTION": "ImageCollection",
    "TABLE": "Table",
    "FOLDER": "Folder",
    "CLASSIFIER": "Classifier",
}
CONTAINER_TYPES = ("FOLDER", "IMAGE_COLLECTION")


def asset_exists(asset_id: str) -> bool:
    """Return True if the asset exists and is readable."""
    try:
        ee.data.getAsset(asset_id)
        return True
    except ee.EEException:
        return False


def asset_type(asset_id: str) -> str:
    """
    Return the type of an asset: Image, ImageCollection, Table or Folder.

    Raises:
        ee.EEException: If the asset does not exist.
    """
    raw = ee.data.getAsset(asset_id)["type"]
    return ASSET_TYPES.get(raw, raw)


def create_asset_folder(folder_path: str) -> bool:
    """
    Create an Earth Engine asset folder if it doesn't already exist.

    Args:
        folder_path: Full path to the asset folder
                     (e.g., 'projects/my-project/assets/my-folder')

    Returns:
        True if the folder was created, False if it already existed.
    """
    try:
        ee.data.getAsset(folder_path)
        return False
    except ee.EEException:
        ee.data.createFolder(folder_path)
        logger.info("Created: %s", folder_path)
        return True


def create_assets_folder(folder_path: str) -> None:
    """Recursively creates a folder structure, parents first."""
    if asset_exists(folder_path):
        return
    parts = folder_path.split("/")
    # 'projects/<name>/assets' is the root and always exists
    if len(parts) > 4:
        create_assets_folder("/".join(parts[:-1]))
    create_asset_folder(folder_path)


def list_assets(parent: str, recursive: bool = False) -> list[dict]:
    """
    List the assets under a folder or image collection.

    Returns:
        A list of ``{"id": ..., "type": ...}`` dicts. With ``recursive`` the
        children of folders and collections follow their parent.
    """
    response = ee.data.listAssets({"parent": parent})
    result = []
    for asset in response.get("assets", []):
        result.append({"id": asset["id"], "type": ASSET_TYPES.get(asset["type"], asset["type"])})
        if recursive and asset["type"] in CONTAINER_TYPES:
            result.extend(list_assets(asset["id"], recursive=True))
    return result


def delete_asset(asset_id: str, recursive: bool = False) -> None:
    """
    Delete an asset.

    Args:
        asset_id: Asset to delete.
        recursive: Delete the contents of folders and collections first.
            Without it, deleting a non-empty container fails remotely.
    """
    if recursive and ee.data.getAsset(asset_id)["type"] in CONTAINER_TYPES:
        for child in ee.data.listAssets({"parent": asset_id}).get("assets", []):
            delete_asset(child["id"], recursive=True)
    ee.data.deleteAsset(asset_id)
    logger.info("Deleted: %s", asset_id)


def copy_asset(src: str, dst: str, overwrite: bool = False) -> None:
    """Copy an asset. Folders and collections are copied item by item."""
    raw_type = ee.data.getAsset(src)["type"]
    if raw_type in CONTAINER_TYPES:
        if raw_type == "FOLDER":
            create_assets_folder(dst)
        elif not asset_exists(dst):
            ee.data.createAsset({"type": "IMAGE_COLLECTION"}, dst)
        for child in ee.data.listAssets({"parent": src}).get("assets", []):
            name = child["id"].rsplit("/", 1)[-1]
            copy_asset(child["id"], f"{dst}/{name}", overwrite=overwrite)
        return
    ee.data.copyAsset(src, dst, overwrite)
    logger.info("Copied %s -> %s", src, dst)


def move_asset(src: str, dst: str) -> None:
    """Move (rename) an asset."""
    ee.data.renameAsset(src, dst)
    logger.info("Moved %s -> %s", src, dst)


def get_properties(asset_id: str) -> dict:
    """Return the user properties of an asset."""
    return ee.data.getAsset(asset_id).get("properties", {})


def set_properties(asset_id: str, properties: dict) -> None:
    """Set (add or overwrite) properties on an asset."""
    if not properties:
        raise ValueError("properties must be a non-empty dict")
    update_mask = [f"properties.{key}" for key in properties]
    ee.data.updateAsset(asset_id, {"properties": properties}, update_mask)


def delete_properties(asset_id: str, keys: list[str]) -> None:
    """Remove properties from an asset."""
    if isinstance(keys, str):
        keys = [keys]
    update_mask = [f"properties.{key}" for key in keys]
    ee.data.updateAsset(asset_id, {"properties": {key: None for key in keys}}, update_mask)


def get_quota(root: str) -> dict:
    """
    Storage quota of an asset root (e.g. 'projects/my-project/assets').

    Returns:
        dict with ``used``/``limit`` bytes and ``count``/``count_limit``.
    """
    quota = ee.data.getAssetRootQuota(root)
    size = quota.get("asset_size", {})
    count = quota.get("asset_count", {})
    return {
        "used": int(size.get("usage", 0)),
        "limit": int(size.get("limit", 0)),
        "count": int(count.get("usage", 0)),
        "count_limit": int(count.get("limit", 0)),
    }


def get_acl(asset_id: str) -> dict:
    """Return the access control list of an asset."""
    return ee.data.getAssetAcl(asset_id)


def set_acl(asset_id: str, acl: dict) -> None:
    """
    Replace the access control list of an asset.

    Args:
        acl: Dict with any of ``owners``, ``writers``, ``readers`` (lists of
            ``user:``/``group:`` members) and ``all_users_can_read``.
    """
    ee.data.setAssetAcl(asset_id, acl)


def make_public(asset_id: str) -> None:
    """Grant read access to all users, keeping the rest of the ACL."""
    acl = dict(get_acl(asset_id))
    acl["all_users_can_read"] = True
    set_acl(asset_id, acl)
    logger.info("%s is now readable by all users", asset_id)
