"""Story package routes: upsert, list, read, delete."""

import logging
from typing import Any, Dict

from fastapi import APIRouter, HTTPException
from pydantic import ValidationError

from taleweave.story.models import StoryPackage

from .game import get_orchestrator
from .game.models import PackageSummary

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=PackageSummary)
async def upsert_package(body: Dict[str, Any]):
    """Validate and store a story package (replaces one with the same id)."""
    try:
        package = StoryPackage.model_validate(body)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid story package: {e}")
    if package.first_position() is None:
        raise HTTPException(status_code=400, detail="Story package needs at least one act with a location")

    get_orchestrator().packages.save(package)
    return PackageSummary(id=package.id, title=package.title, genre=package.genre, art_style=package.art_style)


@router.get("")
async def list_packages():
    return {"packages": get_orchestrator().packages.list_packages()}


@router.get("/{package_id}")
async def get_package(package_id: str):
    package = get_orchestrator().packages.load(package_id)
    if package is None:
        raise HTTPException(status_code=404, detail=f"Story package '{package_id}' not found")
    return package.to_dict()


@router.delete("/{package_id}")
async def delete_package(package_id: str):
    if not get_orchestrator().packages.delete(package_id):
        raise HTTPException(status_code=404, detail=f"Story package '{package_id}' not found")
    return {"status": "deleted", "id": package_id}
