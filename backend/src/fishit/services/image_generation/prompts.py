"""Fish image prompts.

A prompt combines the tier description, the zone scenery and a shared art style.
"""

from fishit.models.mint_record import FishTier, FishZone

MAX_PROMPT_LENGTH = 1000

# Applied to every tier for a consistent collection style
BASE_STYLE = (
    "digital art, vibrant colors, fantasy game art style, clean background, "
    "centered composition, high detail, 8k resolution, unreal engine 5 render"
)

TIER_PROMPTS: dict[str, str] = {
    FishTier.JUNK.value: (
        "small old boot or trash item underwater, dull colors, uninteresting, algae covered"
    ),
    FishTier.COMMON.value: (
        "common small fish, simple design, basic colors (silver, grey, brown), realistic scales"
    ),
    FishTier.RARE.value: (
        "beautiful medium-sized fish, unique patterns, vibrant blue and orange colors, "
        "elegant fins, shimmering scales"
    ),
    FishTier.EPIC.value: (
        "large exotic fish, dramatic appearance, glowing bioluminescent markings, "
        "electric purple and gold colors, majestic flowing fins"
    ),
    FishTier.LEGENDARY.value: (
        "mythical enormous deep-sea fish, otherworldly design, radiant glowing aura, "
        "cosmic colors (deep blue, violet, golden), crystalline scales, "
        "ethereal energy effects, ancient and powerful appearance"
    ),
}

ZONE_CONTEXTS: dict[str, str] = {
    FishZone.SHALLOW.value: "shallow clear water, sunlight filtering through, sandy bottom",
    FishZone.REEF.value: "coral reef environment, colorful underwater scenery, tropical setting",
    FishZone.DEEP_SEA.value: "deep ocean, dark blue water, mysterious depths, subtle lighting",
    FishZone.ABYSSAL.value: (
        "pitch black abyss, bioluminescent creatures, extreme depths, otherworldly environment"
    ),
}


def validate_prompt(prompt: str) -> str:
    """Validate prompt text for image generation.

    Returns:
        Validated prompt (unchanged if valid)

    Raises:
        ValueError: If prompt is empty, None, or exceeds 1000 characters
    """
    if not prompt:
        raise ValueError("Prompt cannot be empty or None")

    if not isinstance(prompt, str):
        raise ValueError(f"Prompt must be a string, got {type(prompt).__name__}")

    if len(prompt) > MAX_PROMPT_LENGTH:
        raise ValueError(
            f"Prompt exceeds maximum length of {MAX_PROMPT_LENGTH} characters (got {len(prompt)})"
        )

    return prompt


def build_prompt(tier: str, zone: str) -> str:
    """Build the generation prompt for a fish.

    Unknown tiers fall back to Common, unknown zones to Shallow.
    """
    tier_prompt = TIER_PROMPTS.get(tier, TIER_PROMPTS[FishTier.COMMON.value])
    zone_context = ZONE_CONTEXTS.get(zone, ZONE_CONTEXTS[FishZone.SHALLOW.value])
    return validate_prompt(f"{tier_prompt}, {zone_context}, {BASE_STYLE}")
