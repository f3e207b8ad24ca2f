"""Loaded prompt markdown plus parsed metadata."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

import frontmatter

from study_flow.models.prompt_spec import PromptConfig, PromptSpec
from study_flow.picoschema import parse_picoschema
from study_flow.schema import ObjectSchema, SchemaNode
from study_flow.templating import PromptTemplate


logger = logging.getLogger(__name__)

SECTION_HEADER_RE = re.compile(r"^(#{1,6})\s+(.+?)\s*$", re.MULTILINE)


@dataclass
class LoadedPromptFile:
    name: str
    description: str
    input_schema: SchemaNode
    output_schema: SchemaNode
    template: PromptTemplate
    system_prompt: str
    config: PromptConfig

    def __init__(self, prompt: Path | str) -> None:
        post, source_label = load_prompt_frontmatter(prompt)
        spec = PromptSpec.model_validate(post.metadata)
        sections = parse_prompt_sections(post.content)
        if not sections.template.strip():
            raise ValueError(f"Prompt file {source_label} has an empty template.")
        name = spec.name or (Path(source_label).stem if source_label != "<inline>" else "")
        if not name:
            raise ValueError("Inline prompts must declare a name in front matter.")
        self.name = name
        self.description = spec.description
        self.input_schema = parse_picoschema(spec.input.declared)
        self.output_schema = parse_picoschema(spec.output.declared)
        self.template = PromptTemplate(sections.template)
        self.system_prompt = sections.system_prompt
        self.config = spec.config
        warn_on_unknown_placeholders(self.template, self.input_schema, source_label)

    @classmethod
    def from_parts(
        cls,
        *,
        name: str,
        input_schema: SchemaNode,
        output_schema: SchemaNode,
        template: str,
        system_prompt: str = "",
        description: str = "",
        config: PromptConfig | None = None,
    ) -> "LoadedPromptFile":
        obj = cls.__new__(cls)
        obj.name = name
        obj.description = description
        obj.input_schema = input_schema
        obj.output_schema = output_schema
        obj.template = PromptTemplate(template)
        obj.system_prompt = system_prompt
        obj.config = config or PromptConfig()
        return obj


@dataclass(frozen=True)
class ParsedPromptSections:
    template: str
    system_prompt: str


def load_prompt_frontmatter(prompt: Path | str) -> tuple[frontmatter.Post, str]:
    if isinstance(prompt, Path):
        post = frontmatter.load(str(prompt))
        return post, str(prompt)
    prompt_path = Path(prompt)
    if "\n" not in prompt and prompt_path.exists():
        post = frontmatter.load(str(prompt_path))
        return post, str(prompt_path)
    post = frontmatter.loads(prompt)
    return post, "<inline>"


def normalize_header_text(header_text: str) -> str:
    normalized = header_text.strip().lower().replace("_", " ")
    return re.sub(r"\s+", " ", normalized)


def parse_prompt_sections(markdown_body: str) -> ParsedPromptSections:
    """
    Split a prompt body on "# System Prompt" and "# Prompt" headers.
    A body without either header is the template as a whole.
    """
    recognized: list[tuple[str, int, int]] = []
    for match in SECTION_HEADER_RE.finditer(markdown_body):
        normalized = normalize_header_text(match.group(2))
        if normalized in ("system prompt", "prompt"):
            recognized.append((normalized, match.start(), match.end()))

    if not recognized:
        return ParsedPromptSections(template=markdown_body.strip(), system_prompt="")

    template = ""
    system_prompt = ""
    for index, (kind, _start, end) in enumerate(recognized):
        next_index = index + 1
        section_end = recognized[next_index][1] if next_index < len(recognized) else len(markdown_body)
        content = markdown_body[end:section_end].strip()
        if kind == "system prompt":
            if not system_prompt:
                system_prompt = content
        elif not template:
            template = content
    return ParsedPromptSections(template=template, system_prompt=system_prompt)


def warn_on_unknown_placeholders(template: PromptTemplate, input_schema: SchemaNode, source_label: str) -> None:
    if not isinstance(input_schema, ObjectSchema):
        return
    declared = {spec.name for spec in input_schema.fields}
    for name in sorted(template.root_names() - declared):
        logger.warning("Template in %s references undeclared input field %r", source_label, name)
