"""Resolve study resources into text that can be placed in a prompt.

Files are downloaded from the blob store and decoded when they hold text.
Links contribute their URL only; pages are never fetched. Every failure is
contained to the resource it happened on.
"""
import logging
import mimetypes
from dataclasses import dataclass
from typing import Iterable, List, Optional

from .crud import get_resources_by_ids, cache_resource_content
from .errors import ResourceError
from .models import StudyResource

logger = logging.getLogger(__name__)

TEXT_EXTENSIONS = {
    "txt", "md", "markdown", "csv", "tsv", "json", "xml", "html", "htm",
    "rst", "tex", "yaml", "yml", "log", "py", "js", "ts", "java", "c", "cpp",
}
TEXT_MIME_TYPES = {
    "application/json", "application/xml", "application/x-yaml",
    "application/javascript", "application/x-tex",
}
FILE_TYPE_LABELS = {
    "pdf": "PDF document",
    "doc": "Word document",
    "docx": "Word document",
    "ppt": "PowerPoint presentation",
    "pptx": "PowerPoint presentation",
    "txt": "text document",
    "md": "text document",
}
WEB_RESOURCE_LABEL = "Web Resource"


@dataclass
class ResolvedResource:
    id: str
    title: str
    resource_type: str
    type_label: str
    content: str
    cached: bool = False
    error: Optional[str] = None


def file_extension(path: Optional[str]) -> str:
    if not path or "." not in path:
        return ""
    return path.rsplit(".", 1)[-1].lower()


def describe_file(resource: StudyResource) -> str:
    return FILE_TYPE_LABELS.get(file_extension(resource.file_path), "document")


def is_text_like(resource: StudyResource) -> bool:
    mime_type = resource.mime_type or mimetypes.guess_type(resource.file_path or "")[0]
    if mime_type and (mime_type.startswith("text/") or mime_type in TEXT_MIME_TYPES):
        return True
    return file_extension(resource.file_path) in TEXT_EXTENSIONS


def extraction_placeholder(resource: StudyResource) -> str:
    return (
        f"Text extraction is not implemented for {describe_file(resource)} files; "
        f"the content of {resource.title or resource.file_path} is unavailable."
    )


async def _resolve_file(resource: StudyResource, storage) -> ResolvedResource:
    title = resource.title or resource.file_path or "Untitled file"
    label = describe_file(resource)
    if not is_text_like(resource):
        if resource.content:
            return ResolvedResource(resource.id, title, "file", label, resource.content, cached=True)
        return ResolvedResource(resource.id, title, "file", label, extraction_placeholder(resource))
    try:
        if not resource.file_path:
            raise ResourceError("Resource has no storage path")
        data = await storage.download(resource.file_path)
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ResourceError(f"Could not decode file as UTF-8: {e}") from e
    except ResourceError as e:
        logger.error(f"Error processing file resource {resource.id}: {e}")
        if resource.content:
            logger.info(f"Using cached content for resource {resource.id}")
            return ResolvedResource(resource.id, title, "file", label, resource.content, cached=True)
        return ResolvedResource(
            resource.id,
            title,
            "file",
            label,
            f"Error: Could not load file content. Error: {e}",
            error=str(e),
        )

    logger.info(f"Read {len(text)} characters from {resource.file_path}")
    try:
        await cache_resource_content(resource.id, text)
    except Exception as e:
        logger.error(f"Failed to cache content for resource {resource.id}: {e}")
    return ResolvedResource(resource.id, title, "file", label, text)


async def resolve_resource(resource: StudyResource, storage) -> Optional[ResolvedResource]:
    if resource.resource_type == "file":
        return await _resolve_file(resource, storage)
    if resource.resource_type == "link" and resource.url:
        return ResolvedResource(resource.id, resource.title or "Link", "link", WEB_RESOURCE_LABEL, resource.url)
    logger.warning(f"Skipping resource {resource.id} of type {resource.resource_type}")
    return None


async def resolve_resources(
    resource_ids: Iterable[str],
    storage,
    user_id: Optional[str] = None,
) -> List[ResolvedResource]:
    """Resolve resources in the order their ids were given"""
    resources = await get_resources_by_ids(resource_ids, user_id)
    resolved = []
    for resource in resources:
        item = await resolve_resource(resource, storage)
        if item is not None:
            resolved.append(item)
    return resolved
