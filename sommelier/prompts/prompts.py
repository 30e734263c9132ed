"""System prompts and user prompt composition for the sommelier pipeline.

The system prompt is assembled from fixed blocks: a base policy block, one
block per experience level, one per recommendation type and, when the occasion
is a known context key, an occasion block. Response guidelines (the policy the
validator and enhancer enforce) are derived from the experience level alone.
"""

from typing import List, Optional, Sequence

from sommelier.models.models import (
    ContextAnalysis,
    ExperienceLevel,
    KnowledgeItem,
    PromptTemplate,
    RecommendationRequest,
    ResponseGuidelines,
    TasteProfile,
)


BASE_SYSTEM_PROMPT = """You are a professional sommelier and wine expert assisting a private cellar owner. Your role is to provide knowledgeable, helpful wine recommendations and education.

## Critical Requirements
- NEVER use emojis in any response
- Maintain a professional sommelier tone at all times
- Provide specific, actionable recommendations
- Include clear reasoning for every recommendation
- Be concise but informative
- Use proper wine terminology appropriately for the user's experience level

## Response Structure
1. Direct answer to the user's question
2. Specific wine recommendations with reasoning
3. Educational context when appropriate
4. Serving suggestions or additional tips if relevant

## Tone Guidelines
- Professional yet approachable
- Confident in recommendations
- Educational without being condescending
- Enthusiastic about wine without being overly casual
- Respectful of the user's preferences and budget

## Factual Accuracy
- Only provide information you are confident about
- Acknowledge uncertainty when appropriate
- Base recommendations on established wine knowledge
- Consider the user's taste profile and preferences"""


EXPERIENCE_LEVEL_PROMPTS = {
    "beginner": """## Audience: Beginner
- Use accessible language and explain wine terms when you use them
- Focus on approachable, widely available wines
- Explain why a wine suits the user, not only what it is
- Offer simple serving and pairing tips
- Encourage exploration without overwhelming detail""",
    "intermediate": """## Audience: Intermediate
- Use standard wine terminology without over-explaining
- Introduce lesser-known regions and producers when they fit
- Discuss structure (acidity, tannins, body) when it supports the recommendation
- Suggest comparisons that build the user's palate""",
    "advanced": """## Audience: Advanced
- Use precise technical vocabulary freely
- Discuss terroir, vintage variation and winemaking choices where relevant
- Reference specific producers, crus and appellations
- Assume familiarity with classic styles and focus on nuance""",
}


RECOMMENDATION_TYPE_PROMPTS = {
    "inventory": """## Task: Recommend From the Cellar
- Choose only from the wines listed in the user's inventory
- Prioritize wines at or near their peak drinking window
- Refer to each wine by producer, name and vintage as listed
- Explain why each bottle suits the moment""",
    "purchase": """## Task: Purchase Recommendations
- Recommend wines the user can buy, with producer, vintage and varietal
- Respect the stated price range
- Favor wines that match the user's taste profile while allowing some discovery
- Mention the region each wine comes from""",
    "pairing": """## Task: Food Pairing
- Match the wine's weight and intensity to the dish
- Consider the dominant flavors, cooking method and sauce
- Explain the pairing principle behind each suggestion (complement or contrast)
- Prefer bottles from the user's inventory when one fits""",
    "restaurant": """## Task: Restaurant Wine List
- Recommend styles and specific bottles likely to appear on a restaurant list
- Suggest a safe choice and a more adventurous alternative
- Consider by-the-glass options for mixed orders
- Keep markup and value in mind""",
}


CONTEXT_PROMPTS = {
    "casual_evening": """## Occasion: Casual Evening
- Favor easy-drinking, approachable wines
- Keep serving advice simple
- Good value matters more than prestige""",
    "formal_dinner": """## Occasion: Formal Dinner
- Suggest wines that can accompany several courses
- Include decanting and serving temperature guidance
- Prestige and presentation are appropriate considerations""",
    "romantic_dinner": """## Occasion: Romantic Dinner
- Suggest elegant wines that can be shared over a long meal
- Sparkling and aromatic whites are welcome options
- Mention serving details that set the mood""",
    "celebration": """## Occasion: Celebration
- Sparkling wine is a natural choice; suggest alternatives as well
- Consider group size and crowd-pleasing styles
- Highlight wines with a sense of occasion""",
    "learning": """## Occasion: Learning
- Frame recommendations as a tasting exercise
- Point out the characteristics to notice in each wine
- Suggest side-by-side comparisons""",
}


EXPERIENCE_GUIDELINES = {
    "beginner": ("accessible", 1200),
    "intermediate": ("intermediate", 1500),
    "advanced": ("advanced", 1800),
}


def build_response_guidelines(experience_level: ExperienceLevel) -> ResponseGuidelines:
    """Derive the response policy for an experience level."""
    vocabulary_level, max_length = EXPERIENCE_GUIDELINES[experience_level]
    return ResponseGuidelines(
        include_education=experience_level == "beginner",
        vocabulary_level=vocabulary_level,
        max_length=max_length,
    )


def build_prompt_template(
    experience_level: ExperienceLevel,
    recommendation_type: str,
    occasion_type: Optional[str] = None,
) -> PromptTemplate:
    """Assemble the system prompt and response policy for one request.

    Args:
        experience_level: beginner, intermediate or advanced.
        recommendation_type: inventory, purchase, pairing or restaurant.
        occasion_type: Occasion key from context analysis. Unknown keys are skipped.

    Returns:
        PromptTemplate: Immutable prompt plus response guidelines.
    """
    blocks = [
        BASE_SYSTEM_PROMPT,
        EXPERIENCE_LEVEL_PROMPTS[experience_level],
        RECOMMENDATION_TYPE_PROMPTS.get(recommendation_type, RECOMMENDATION_TYPE_PROMPTS["purchase"]),
    ]
    if occasion_type and occasion_type in CONTEXT_PROMPTS:
        blocks.append(CONTEXT_PROMPTS[occasion_type])

    return PromptTemplate(
        system_prompt="\n\n".join(blocks),
        user_experience_level=experience_level,
        response_guidelines=build_response_guidelines(experience_level),
    )


def determine_recommendation_type(request: RecommendationRequest) -> str:
    """Pick the prompt task block: pairing, then inventory, then purchase."""
    if request.context.food_pairing:
        return "pairing"
    if request.inventory:
        return "inventory"
    return "purchase"


def _get_taste_profile_section(profile: TasteProfile) -> List[str]:
    lines = []
    for family, preferences in profile.families():
        line = (
            f"{family.capitalize()} wine preferences - Body: {preferences.body}, "
            f"Fruitiness: {preferences.fruitiness}/10, Earthiness: {preferences.earthiness}/10"
        )
        if preferences.preferred_varietals:
            line += f", Varietals: {', '.join(preferences.preferred_varietals)}"
        if preferences.preferred_regions:
            line += f", Regions: {', '.join(preferences.preferred_regions)}"
        lines.append(line)

    price_range = profile.general_preferences.price_range
    if price_range:
        lines.append(f"Usual price range: {price_range.min:g}-{price_range.max:g} {price_range.currency}")
    return lines


def _get_inventory_section(request: RecommendationRequest, limit: int = 10) -> List[str]:
    if not request.inventory:
        return []
    lines = ["", "Available wines in inventory:"]
    for wine in request.inventory[:limit]:
        vintage = wine.vintage if wine.vintage else "NV"
        lines.append(f"- {wine.name} ({wine.producer}) - {vintage} {wine.type} from {wine.region or 'unknown region'}")
        lines.append(f"  Status: {wine.drinking_window.current_status}, Quantity: {wine.quantity}")
    return lines


def _get_knowledge_section(knowledge: Sequence[KnowledgeItem], limit: int = 3) -> List[str]:
    if not knowledge:
        return []
    lines = ["", "Relevant wine knowledge:"]
    lines.extend(f"- {item.content}" for item in knowledge[:limit])
    return lines


def build_user_prompt(
    request: RecommendationRequest,
    analysis: ContextAnalysis,
    knowledge: Sequence[KnowledgeItem] = (),
) -> str:
    """Render the user prompt for the completion call.

    Args:
        request: The incoming recommendation request.
        analysis: Context signals derived from the request.
        knowledge: Retrieved knowledge snippets (first three are used).

    Returns:
        str: Prompt text.
    """
    context = request.context
    lines = [
        f"User Query: {request.query or 'Please recommend a wine.'}",
        "",
        f"User Experience Level: {request.experience_level}",
        "",
        "User Taste Profile:",
        *_get_taste_profile_section(request.user_profile),
    ]

    context_lines = []
    if context.occasion:
        context_lines.append(f"Occasion: {context.occasion}")
    if context.food_pairing:
        context_lines.append(f"Food Pairing: {context.food_pairing}")
    if context.price_range:
        context_lines.append(
            f"Price Range: {context.price_range.min:g}-{context.price_range.max:g} {context.price_range.currency}"
        )
    if analysis.occasion.special_considerations:
        context_lines.append(f"Special Considerations: {', '.join(analysis.occasion.special_considerations)}")
    if analysis.urgency.drinking_window_priority:
        context_lines.append("Note: some cellar wines are past their peak and should be opened soon")
    if context_lines:
        lines.extend(["", "Context:", *context_lines])

    lines.extend(_get_inventory_section(request))
    lines.extend(_get_knowledge_section(knowledge))
    lines.extend([
        "",
        "Please provide specific wine recommendations with clear reasoning, "
        "appropriate for the user's experience level.",
    ])
    return "\n".join(lines)
