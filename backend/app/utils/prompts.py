"""Generation prompt construction and description parsing.

Templates live in app/prompts/generation_{rendering_type}.txt and are filled
with str.format.
"""

from __future__ import annotations

from pathlib import Path

from app.errors import InvalidInput
from app.models.contracts import GenerationParameters

PROMPTS_DIR = Path(__file__).parent.parent / "prompts"

VIEW_DESCRIPTIONS: dict[str, str] = {
    "frontal": "from the front, facing the main wall",
    "side": "from the side, capturing an angled perspective",
    "top": "from above, as a bird's-eye view",
}

_LIST_AND_DESCRIPTION = """
Start by listing the essential furniture and appliances that should be included in the redesigned {room_type}, based on the {style} style{color_prompt}.
**Only provide a plain list of object names, with no extra descriptions, like this:**
- [object name 1]
- [object name 2]
- etc.

Do not combine this list with any explanation or context. The description comes after.

Then, describe the layout and positioning of these elements in the {room_type}."""

_IMAGE_PROMPT = "\n\nFinally, generate an image that represents the design in a {rendering_type} format."

_OBJECTS_INSTRUCTION = (
    "\nBe sure to include the attached object(s) in the final image, "
    "integrating them naturally into the scene."
)


def _load_prompt(name: str) -> str:
    path = PROMPTS_DIR / name
    try:
        return path.read_text()
    except FileNotFoundError as exc:
        raise InvalidInput(f"Unsupported rendering type: {name}") from exc


def color_prompt(color_tone: str | None) -> str:
    """Translate 'palette:<name>' / 'color:<name>' into prompt text."""
    if not color_tone:
        return ""
    if color_tone.startswith("palette:"):
        return f" using a {color_tone.removeprefix('palette:')} color palette"
    if color_tone.startswith("color:"):
        return f" focusing on {color_tone.removeprefix('color:')} tones"
    return ""


def _user_prompt(prompt: str | None) -> str:
    if prompt and prompt.strip():
        return "\n\n**Additional requests from the user:**\n" + prompt.strip()
    return ""


def build_generation_prompt(params: GenerationParameters, *, with_objects: bool) -> str:
    """Build the full model prompt for a new design."""
    template = _load_prompt(f"generation_{params.rendering_type.lower()}.txt")

    colors = color_prompt(params.color_tone)
    view = VIEW_DESCRIPTIONS.get(params.view_type or "")
    view_prompt = f" Set the point of view {view}." if view else ""
    style = params.style
    room_type = params.room_type

    return template.format(
        room_type=room_type,
        style=style,
        rendering_type=params.rendering_type,
        color_prompt=colors,
        color_label=colors.strip() or "Default",
        view_prompt=view_prompt,
        view_label=view or "Default (Front)",
        list_and_description=_LIST_AND_DESCRIPTION.format(
            room_type=room_type, style=style, color_prompt=colors
        ),
        image_prompt=_IMAGE_PROMPT.format(rendering_type=params.rendering_type),
        objects_instruction=_OBJECTS_INSTRUCTION if with_objects else "",
        user_prompt=_user_prompt(params.prompt),
    )


_REPLACE_TARGETED = (
    "\n- Replace the '{target}' visible in the original image with the new object described "
    "as '{replacement}'. Refer to the attached image for the visual representation of the new "
    "object. Integrate it naturally into the scene, matching the style and perspective."
)

_REPLACE_GENERIC = (
    "\n- IMPORTANT: You MUST replace the original object(s) with the attached replacement "
    "image(s). Match the style, scale and perspective of the scene."
)


def build_regeneration_prompt(
    params: GenerationParameters,
    *,
    target: str | None = None,
    replacement_description: str | None = None,
) -> str:
    """Build the prompt that re-renders an earlier design.

    With a replacement, the named `target` is swapped for the attached object;
    without a target name the model is told to swap whatever matches it.
    """
    template = _load_prompt("regeneration.txt")
    view = VIEW_DESCRIPTIONS.get(params.view_type or "")
    colors = color_prompt(params.color_tone) or " Keep existing tones if not specified."
    view_prompt = (
        f" Set the point of view {view}." if view else " Keep original view if not specified."
    )

    replacement_instruction = ""
    if replacement_description and target:
        replacement_instruction = _REPLACE_TARGETED.format(
            target=target, replacement=replacement_description
        )
    elif replacement_description:
        replacement_instruction = _REPLACE_GENERIC

    return template.format(
        room_type=params.room_type,
        style=params.style,
        rendering_type=params.rendering_type,
        color_prompt=colors,
        view_prompt=view_prompt,
        replacement_instruction=replacement_instruction,
        user_prompt=_user_prompt(params.prompt),
    )


def parse_detected_objects(description: str) -> list[str]:
    """Object names from '- name' lines of the model's description."""
    objects: list[str] = []
    for line in description.splitlines():
        stripped = line.strip()
        if stripped.startswith("- "):
            name = stripped[2:].strip()
            if name:
                objects.append(name)
    return objects
