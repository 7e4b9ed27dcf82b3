"""YAML front matter parsing for markdown sources.

Example markdown with front matter:
    ---
    title: Getting Started
    ---
    # Getting Started

    This tutorial begins...
"""

import re
from typing import Any

import yaml


# Opening and closing fences must match: "---" (common) or "-----"
_FRONT_MATTER_PATTERN = re.compile(r"^(-{3}|-{5})[ \t]*\n(.*?)\n\1[ \t]*(?:\n|$)", re.DOTALL)


def parse_front_matter(content: str) -> tuple[dict[str, Any], str]:
    """Parse YAML front matter from markdown content.

    Args:
        content: Full markdown content including front matter

    Returns:
        Tuple of (front_matter_dict, markdown_content)
        If no front matter found, returns (empty dict, original content)

    Example:
        >>> metadata, markdown = parse_front_matter("---\\ntitle: Intro\\n---\\n# Content")
        >>> metadata["title"]
        'Intro'
        >>> markdown
        '# Content'
    """
    match = _FRONT_MATTER_PATTERN.match(content)
    if not match:
        return {}, content

    try:
        metadata = yaml.safe_load(match.group(2)) or {}
    except yaml.YAMLError:
        # Invalid YAML - treat the block as regular content
        return {}, content

    if not isinstance(metadata, dict):
        return {}, content

    return metadata, content[match.end() :]
