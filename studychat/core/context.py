from typing import List

from .resources import ResolvedResource

MAX_RESOURCE_CHARS = 20000
SECTION_SEPARATOR = "---"

INSTRUCTIONS = """You are a knowledgeable study assistant with access to the user's study materials.

Instructions for handling study materials:
1. Analyze and use the provided documents to answer questions accurately
2. If a question cannot be answered using the available documents, say "I don't know" and explain what is missing
3. When referencing information, cite the specific document it came from using its title in square brackets
4. For file content:
   - Interpret the content based on the file type (PDF, Word, PowerPoint, text)
   - Do not invent content for files whose text could not be extracted
5. For web resources:
   - Reference the URL when relevant
   - Mention that the information comes from a web resource, not an uploaded file
6. Keep responses focused and educational
7. If appropriate, suggest how other available resources might be relevant to the topic"""


def _bounded(content: str, limit: int) -> str:
    if len(content) <= limit:
        return content
    return content[:limit] + f"\n[... truncated {len(content) - limit} characters]"


def build_section(resource: ResolvedResource, limit: int = MAX_RESOURCE_CHARS) -> str:
    label = f"{resource.type_label}, cached" if resource.cached else resource.type_label
    header = f"[{resource.title}] ({label})"
    if resource.resource_type == "link":
        return f"{header}\nURL: {resource.content}\n{SECTION_SEPARATOR}"
    return f"{header}\nContent:\n{_bounded(resource.content, limit)}\n{SECTION_SEPARATOR}"


def build_context_block(resources: List[ResolvedResource], limit: int = MAX_RESOURCE_CHARS) -> str:
    """One section per resource, in the order given"""
    return "\n\n".join(build_section(resource, limit) for resource in resources)


def build_system_message(context: str) -> str:
    if not context:
        return INSTRUCTIONS
    return f"{INSTRUCTIONS}\n\nHere are the available documents:\n\n{context}"
