"""Prompt construction for HTML diagram generation.

Holds the diagram system prompt and builds chat messages from a
GenerationRequest: conversation history, external search context, reference
file text and the previous artifact for iteration requests. Also builds the
revision exchange used when validation feedback asks for a new version.
"""

import re
from collections.abc import Sequence
from dataclasses import dataclass

from diagrammer.models import GenerationRequest
from diagrammer.validation.rules import LUCIDE_SCRIPT, TAILWIND_SCRIPT

ChatMessage = dict[str, str]

SYSTEM_PROMPT = f"""You are an expert at creating beautiful, professional diagrams and illustrations using HTML and Tailwind CSS.

CRITICAL RULES - FOLLOW EXACTLY:

1. OUTPUT FORMAT:
   - Output a single HTML document in one ```html code block
   - Always include the html, head and body tags
   - No <style> tags and no stylesheet <link> tags; use Tailwind classes or the style attribute

2. REQUIRED SCRIPTS (in the head):
   <script src="{TAILWIND_SCRIPT}"></script>
   <script src="{LUCIDE_SCRIPT}"></script>

3. ICONS:
   - Use Lucide icons exclusively, with strokeWidth 1.5
   - Call <script>lucide.createIcons();</script> at the end of the body

4. DESIGN STYLE:
   - Modern, clean, minimalist product design; never name the brands that inspire it
   - Subtle 1px dividers and outlines, soft contrast, generous spacing

5. TYPOGRAPHY:
   - Use font weights one level lighter than your first instinct
   - Titles larger than 20px use tracking-tight
   - System font stack or Inter

6. RESPONSIVENESS:
   - Fully responsive with sm:, md:, lg: and xl: variants
   - No horizontal overflow on mobile, tablet or desktop

7. CSS STRUCTURE:
   - No classes on the <html> tag; put page-level classes on <body>

8. IMAGES:
   - Without user-provided images, use descriptive Unsplash URLs
   - Every image has alt text

9. INTERACTIVITY:
   - No JavaScript animations; use Tailwind transitions and hover: states
   - No floating download buttons

10. CHARTS:
    - Use Chart.js from https://cdn.jsdelivr.net/npm/chart.js with animation: false
    - Place each canvas in a responsive container

11. COLOR MODE:
    - Dark mode for tech or futuristic themes, light mode for business themes

12. ACCESSIBILITY:
    - Semantic HTML, ARIA labels on icon-only buttons, sufficient contrast

Output ONLY the HTML code block, with no explanation before or after it."""

REVISION_TEMPLATE = """The diagram has the following issues that need to be fixed:

{feedback}

Please generate an improved version that addresses all these issues while maintaining the original intent."""

SECTION_SEPARATOR = "\n\n---\n\n"


@dataclass
class PromptConfig:
    """Configuration for prompt building.

    Attributes:
        include_history: Prepend prior conversation turns.
        include_files: Append reference file text.
        include_search_context: Prepend the external research section.
        max_file_chars: Per-file character limit (None = unlimited).
    """

    include_history: bool = True
    include_files: bool = True
    include_search_context: bool = True
    max_file_chars: int | None = None


class PromptBuilder:
    """Builds chat messages for diagram generation.

    Messages are plain ``{"role", "content"}`` dicts. The system prompt is
    not part of the list; backends receive it separately.

    Example:
        >>> builder = PromptBuilder()
        >>> messages = builder.build(request)
        >>> messages[-1]["role"]
        'user'
    """

    def __init__(self, config: PromptConfig | None = None):
        self._config = config or PromptConfig()

    @property
    def system_prompt(self) -> str:
        return SYSTEM_PROMPT

    def build(
        self,
        request: GenerationRequest,
        prompt_text: str | None = None,
    ) -> list[ChatMessage]:
        """Build the messages for a first generation.

        Args:
            request: The generation request.
            prompt_text: User text to send. Defaults to the request instruction.

        Returns:
            History turns followed by one user message.
        """
        messages: list[ChatMessage] = []
        if self._config.include_history:
            messages.extend(
                {"role": turn.role, "content": turn.content}
                for turn in request.conversation_history
            )
        content = self.build_user_message(request, prompt_text)
        messages.append({"role": "user", "content": content})
        return messages

    def build_revision(
        self,
        request: GenerationRequest,
        previous_artifact: str,
        revision_prompt: str,
    ) -> list[ChatMessage]:
        """Build the messages asking for an improved version.

        Args:
            request: The generation request.
            previous_artifact: HTML produced by the previous iteration.
            revision_prompt: Text listing the issues to fix.

        Returns:
            The original user message, the previous artifact as the
            assistant turn, and the revision request.
        """
        return [
            {"role": "user", "content": self.build_user_message(request)},
            {"role": "assistant", "content": f"```html\n{previous_artifact}\n```"},
            {"role": "user", "content": revision_prompt},
        ]

    def build_user_message(
        self,
        request: GenerationRequest,
        prompt_text: str | None = None,
    ) -> str:
        """Assemble the user message with all attached context."""
        message = prompt_text if prompt_text is not None else request.instruction

        if self._config.include_search_context and request.search_context is not None:
            message = self._format_search_context(request) + message

        if self._config.include_files and request.files:
            contents = [self._truncate(f.content) for f in request.files if f.content]
            if contents:
                message += "\n\n**Context from uploaded files:**\n"
                message += SECTION_SEPARATOR.join(contents)

        if request.previous_artifacts:
            message += (
                "\n\n**This is an iteration. Previous version:**\n"
                f"{request.previous_artifacts[-1]}"
            )

        return message

    def _format_search_context(self, request: GenerationRequest) -> str:
        context = request.search_context
        citations = "\n".join(
            f"[{i}] {citation.title} - {citation.url}"
            for i, citation in enumerate(context.citations, 1)
        )
        return (
            "**Web Research Context:**\n\n"
            f"{context.answer}\n\n"
            "**Sources:**\n"
            f"{citations}\n\n"
            "**Instructions:** Use the above research to inform your diagram. "
            "Include a small citation footer referencing the sources by number "
            "[1], [2], etc.\n\n"
            "---\n\n"
        )

    def _truncate(self, content: str) -> str:
        limit = self._config.max_file_chars
        if limit is None or len(content) <= limit:
            return content
        return content[:limit] + "\n[truncated]"


def build_revision_prompt(feedback: Sequence[str]) -> str:
    """Build the revision request from accumulated feedback, oldest first."""
    return REVISION_TEMPLATE.format(feedback=SECTION_SEPARATOR.join(feedback))


_HTML_BLOCK = re.compile(r"```html\s*\n([\s\S]*?)\n\s*```", re.IGNORECASE)
_GENERIC_BLOCK = re.compile(r"```[a-zA-Z]*\s*\n([\s\S]*?)\n\s*```")


def extract_html(response: str) -> str:
    """Extract the HTML document from a model response.

    Prefers an ```html fenced block, then any fenced block, then the whole
    response as-is.
    """
    match = _HTML_BLOCK.search(response) or _GENERIC_BLOCK.search(response)
    if match:
        return match.group(1).strip()
    return response.strip()


__all__ = [
    "ChatMessage",
    "PromptBuilder",
    "PromptConfig",
    "SYSTEM_PROMPT",
    "build_revision_prompt",
    "extract_html",
]
