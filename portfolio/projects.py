"""
Project service: CRUD over portfolio entries, images delegated to the image store.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

from portfolio.db import DbClient, ProjectRecord, new_id
from portfolio.errors import BadRequestError, NotFoundError
from portfolio.storage import ImageStorageClient

logger = logging.getLogger(__name__)

CATEGORIES = ("textile", "drawings", "paintings", "crafts")
ALL_CATEGORIES = "all"
MAX_TITLE_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 500
ALLOWED_IMAGE_TYPES = ("image/jpeg", "image/png", "image/webp", "image/gif")


@dataclass
class ImageUpload:
    """An image file received from a form."""

    filename: str
    content_type: str
    data: bytes


class ProjectService:
    def __init__(
        self,
        db: DbClient,
        storage: ImageStorageClient,
        *,
        max_upload_bytes: int = 10 * 1024 * 1024,
    ):
        self.db = db
        self.storage = storage
        self.max_upload_bytes = max_upload_bytes

    def list_projects(self, category: Optional[str] = None) -> list[ProjectRecord]:
        if not category or category == ALL_CATEGORIES:
            return self.db.list_projects()
        return self.db.list_projects(category)

    def get_project(self, project_id: str) -> ProjectRecord:
        project = self.db.get_project(project_id)
        if not project:
            raise NotFoundError("Project not found")
        return project

    def create_project(
        self,
        *,
        title: Optional[str],
        category: Optional[str],
        description: Optional[str],
        image: Optional[ImageUpload],
    ) -> ProjectRecord:
        title = (title or "").strip()
        category = (category or "").strip()
        description = (description or "").strip()
        if not title or not category or not description:
            raise BadRequestError("Please provide all required fields")
        if image is None:
            raise BadRequestError("Please upload an image")
        _validate_fields(title, category, description)

        stored = self._upload(image)
        now = time.time()
        project = self.db.create_project(
            ProjectRecord(
                project_id=new_id(),
                title=title,
                category=category,
                description=description,
                image=stored.url,
                image_public_id=stored.public_id,
                created_at=now,
                updated_at=now,
            )
        )
        logger.info("Created project %s (%s)", project.project_id, project.title)
        return project

    def update_project(
        self,
        project_id: str,
        *,
        title: Optional[str] = None,
        category: Optional[str] = None,
        description: Optional[str] = None,
        image: Optional[ImageUpload] = None,
    ) -> ProjectRecord:
        project = self.get_project(project_id)

        # Blank fields keep their previous value.
        project.title = (title or "").strip() or project.title
        project.category = (category or "").strip() or project.category
        project.description = (description or "").strip() or project.description
        _validate_fields(project.title, project.category, project.description)

        if image is not None:
            stored = self._upload(image)
            self._discard_image(project.image_public_id)
            project.image = stored.url
            project.image_public_id = stored.public_id

        return self.db.save_project(project)

    def delete_project(self, project_id: str) -> None:
        project = self.get_project(project_id)
        self._discard_image(project.image_public_id)
        self.db.delete_project(project.project_id)
        logger.info("Deleted project %s", project_id)

    def reorder_projects(self, items: Any) -> int:
        """Set each project's order to its position in `items`.

        Unknown ids are skipped; the count of updated projects is returned.
        """
        if not isinstance(items, list):
            raise BadRequestError("Invalid data format")
        project_ids = [
            item.get("id") if isinstance(item, dict) else None for item in items
        ]
        if not all(isinstance(project_id, str) for project_id in project_ids):
            raise BadRequestError("Invalid data format")
        updated = 0
        for index, project_id in enumerate(project_ids):
            if self.db.set_project_order(project_id, index):
                updated += 1
        return updated

    def _upload(self, image: ImageUpload):
        if image.content_type not in ALLOWED_IMAGE_TYPES:
            raise BadRequestError(
                "Only JPG, PNG, WEBP and GIF images are allowed"
            )
        if not image.data:
            raise BadRequestError("Please upload an image")
        if len(image.data) > self.max_upload_bytes:
            raise BadRequestError("Image is too large")
        return self.storage.upload_image(image.data, image.filename, image.content_type)

    def _discard_image(self, public_id: Optional[str]) -> None:
        if not public_id:
            return
        try:
            self.storage.delete_image(public_id)
        except Exception:
            logger.exception("Error deleting image %s from storage", public_id)


def _validate_fields(title: str, category: str, description: str) -> None:
    if len(title) > MAX_TITLE_LENGTH:
        raise BadRequestError(
            f"Title cannot exceed {MAX_TITLE_LENGTH} characters"
        )
    if category not in CATEGORIES:
        raise BadRequestError(f"{category} is not a valid category")
    if len(description) > MAX_DESCRIPTION_LENGTH:
        raise BadRequestError(
            f"Description cannot exceed {MAX_DESCRIPTION_LENGTH} characters"
        )
