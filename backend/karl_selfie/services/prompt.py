"""Final prompt construction for the two-image composite."""
from karl_selfie.core.errors import InvalidPromptInput

PROMPT_BLOCK_SEPARATOR = "\n\n"

CONTEXT_BLOCK = (
    "Create an ultra-photorealistic image. "
    "This is a fun, family-friendly artistic composition."
)

IMAGE_REFERENCE_BLOCK = """CRITICAL - Two reference images provided:
- Image 1: Karl, the wooden block character (use as exact reference for Karl's appearance)
- Image 2: The user's selfie (MUST preserve this person's EXACT facial features, face shape, skin tone, hair color, hair style, eye color, and all identifying characteristics)"""

KARL_DESCRIPTION_BLOCK = (
    "Karl the wooden character: A recognizable humanoid figure made entirely of "
    "stacked natural wooden blocks. Visible wood grain texture on all surfaces. "
    "Small metal screw details at joints. Rectangular blocky head with a comically "
    "grumpy/unimpressed facial expression carved into the wood. "
    "Proportions exactly as shown in reference image 1."
)

IDENTITY_BLOCK = """IMPORTANT - The human person in this image MUST be an EXACT photorealistic likeness of the person in reference image 2 (the selfie). Preserve with 100% accuracy:
- Exact face shape, jawline, and facial structure
- Exact eye color, eye shape, eyebrows
- Exact nose shape and size
- Exact lip shape and skin tone
- Exact hair color, texture, length, and style
- Any distinctive features like freckles, moles, or facial hair
The person should look like a real photograph of this specific individual, not a generic person."""

SCENE_LABEL = "Scene Description: "

STYLE_BLOCK = (
    "Visual Style: Ultra-photorealistic, indistinguishable from a real photograph. "
    "Shot on professional cinema camera with 35mm lens. "
    "Natural cinematic lighting with soft shadows. Realistic global illumination. "
    "Shallow depth of field. 8K resolution quality. "
    "The wooden Karl character should look like a real physical wooden sculpture "
    "photographed in this scene. The human should look like an actual photograph "
    "of a real person. No cartoon, illustration, painting or stylized rendering."
)

CONSTRAINTS_BLOCK = (
    "Requirements: Family-friendly content. No text, logos, or watermarks. "
    "Absolutely NO cartoon or CGI aesthetic - this must look like a real photograph. "
    "The human's face must match the selfie reference exactly."
)


def build_final_prompt(scene_description: str) -> str:
    """Build the instruction sent to the image model with both reference images.

    Identity preservation is stated twice on purpose: once for the image
    order (block 2) and once attribute by attribute (block 4). The scene
    description is inserted verbatim.

    Args:
        scene_description: Scene text chosen from the catalog or typed by the user.

    Returns:
        Seven blocks joined by a blank line.

    Raises:
        InvalidPromptInput: The description is empty or whitespace only.
    """
    if not scene_description or not scene_description.strip():
        raise InvalidPromptInput()

    return PROMPT_BLOCK_SEPARATOR.join(
        [
            CONTEXT_BLOCK,
            IMAGE_REFERENCE_BLOCK,
            KARL_DESCRIPTION_BLOCK,
            IDENTITY_BLOCK,
            f"{SCENE_LABEL}{scene_description}",
            STYLE_BLOCK,
            CONSTRAINTS_BLOCK,
        ]
    )
