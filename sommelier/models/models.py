"""Data models for the wine recommendation pipeline.

Defines Pydantic models for requests, derived context, prompt policy,
validation results and responses. All models use Pydantic v2. Request-side
models are frozen: one pipeline run never mutates its input.
"""

from typing import Annotated, Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


ExperienceLevel = Literal["beginner", "intermediate", "advanced"]
WineType = Literal["red", "white", "rosé", "sparkling", "dessert", "fortified"]
DrinkingStatus = Literal["too_young", "ready", "peak", "declining", "over_hill"]
RecommendationType = Literal["inventory", "purchase", "pairing"]
Formality = Literal["casual", "semi_formal", "formal"]
TimeOfDay = Literal["morning", "afternoon", "evening", "late_night"]
Season = Literal["spring", "summer", "fall", "winter"]
Richness = Literal["light", "medium", "rich"]
SpiceLevel = Literal["none", "mild", "medium", "hot"]
Availability = Literal["inventory_only", "purchase_allowed", "restaurant_list"]
UrgencyLevel = Literal["low", "medium", "high"]
VocabularyLevel = Literal["accessible", "intermediate", "advanced"]
Severity = Literal["low", "medium", "high"]


class FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)


# ============================================================================
# Caller-owned state (read-only inside the pipeline)
# ============================================================================


class PriceRange(FrozenModel):
    """Price bounds in a single currency."""

    min: Annotated[float, Field(ge=0, description="Lower bound")] = 0.0
    max: Annotated[float, Field(ge=0, description="Upper bound")]
    currency: Annotated[str, Field(min_length=3, max_length=3, description="ISO 4217 code")] = "USD"

    @model_validator(mode="after")
    def validate_bounds(self) -> "PriceRange":
        if self.max < self.min:
            raise ValueError(f"max ({self.max}) must be >= min ({self.min})")
        return self


class DrinkingWindow(FrozenModel):
    """Drinking window as computed by the cellar service."""

    current_status: Annotated[DrinkingStatus, Field(description="Where the wine sits in its window")] = "ready"
    earliest_year: Optional[int] = None
    peak_year: Optional[int] = None
    latest_year: Optional[int] = None


class Wine(FrozenModel):
    """A bottle (or stack of bottles) in the user's cellar."""

    id: Annotated[str, Field(min_length=1)]
    name: Annotated[str, Field(min_length=1)]
    producer: Annotated[str, Field(min_length=1)]
    vintage: Annotated[Optional[int], Field(ge=1800, le=2100)] = None
    region: str = ""
    country: str = ""
    varietal: List[str] = Field(default_factory=list)
    type: WineType = "red"
    quantity: Annotated[int, Field(ge=0)] = 1
    purchase_price: Annotated[Optional[float], Field(ge=0)] = None
    drinking_window: DrinkingWindow = Field(default_factory=DrinkingWindow)
    tasting_notes: Optional[str] = None
    professional_rating: Annotated[Optional[int], Field(ge=0, le=100)] = None


class FlavorProfile(FrozenModel):
    """Learned preferences for one wine family (red, white or sparkling)."""

    fruitiness: Annotated[int, Field(ge=1, le=10)] = 5
    earthiness: Annotated[int, Field(ge=1, le=10)] = 5
    oakiness: Annotated[int, Field(ge=1, le=10)] = 5
    acidity: Annotated[int, Field(ge=1, le=10)] = 5
    tannins: Annotated[int, Field(ge=1, le=10)] = 5
    sweetness: Annotated[int, Field(ge=1, le=10)] = 3
    body: Literal["light", "medium", "full"] = "medium"
    preferred_regions: List[str] = Field(default_factory=list)
    preferred_varietals: List[str] = Field(default_factory=list)
    disliked_characteristics: List[str] = Field(default_factory=list)


class GeneralPreferences(FrozenModel):
    price_range: Optional[PriceRange] = None
    occasion_preferences: List[str] = Field(default_factory=list)
    food_pairing_importance: Annotated[int, Field(ge=1, le=10)] = 5


class TastingRecord(FrozenModel):
    """One rated tasting from the user's history."""

    wine_id: Annotated[str, Field(min_length=1)]
    rating: Annotated[int, Field(ge=1, le=5)]
    notes: str = ""
    characteristics: List[str] = Field(default_factory=list)


class TasteProfile(FrozenModel):
    """User taste profile supplied by the caller."""

    user_id: str = ""
    red_wine_preferences: FlavorProfile = Field(default_factory=FlavorProfile)
    white_wine_preferences: FlavorProfile = Field(default_factory=FlavorProfile)
    sparkling_preferences: FlavorProfile = Field(default_factory=FlavorProfile)
    general_preferences: GeneralPreferences = Field(default_factory=GeneralPreferences)
    learning_history: List[TastingRecord] = Field(default_factory=list)
    confidence_score: Annotated[float, Field(ge=0.0, le=1.0)] = 0.0

    def families(self) -> List[tuple[str, FlavorProfile]]:
        return [
            ("red", self.red_wine_preferences),
            ("white", self.white_wine_preferences),
            ("sparkling", self.sparkling_preferences),
        ]


class RecommendationContext(FrozenModel):
    """Optional structured hints accompanying the free-text query."""

    occasion: Optional[str] = None
    food_pairing: Optional[str] = None
    price_range: Optional[PriceRange] = None
    companions: List[str] = Field(default_factory=list)
    season: Optional[Season] = None


class RecommendationRequest(FrozenModel):
    """Input of one pipeline run."""

    user_id: Annotated[str, Field(min_length=1, description="Requesting user")]
    query: Annotated[str, Field(max_length=2000, description="Free-text request")] = ""
    context: RecommendationContext = Field(default_factory=RecommendationContext)
    user_profile: TasteProfile = Field(default_factory=TasteProfile)
    inventory: Optional[List[Wine]] = None
    experience_level: ExperienceLevel = "intermediate"


# ============================================================================
# Derived context
# ============================================================================


class OccasionContext(FrozenModel):
    type: str = "general"
    formality: Formality = "casual"
    time_of_day: TimeOfDay = "evening"
    season: Season = "winter"
    companion_count: Annotated[int, Field(ge=1)] = 1
    special_considerations: List[str] = Field(default_factory=list)


class FoodPairingContext(FrozenModel):
    main_dish: Optional[str] = None
    cuisine: Optional[str] = None
    flavors: List[str] = Field(default_factory=list)
    cooking_method: Optional[str] = None
    richness: Richness = "medium"
    spice_level: SpiceLevel = "none"


class PreferenceContext(FrozenModel):
    taste_profile: TasteProfile
    recent_consumption: List[Wine] = Field(default_factory=list)
    disliked_characteristics: List[str] = Field(default_factory=list)
    preferred_producers: List[str] = Field(default_factory=list)
    adventurousness: Annotated[int, Field(ge=1, le=10)] = 1


class ConstraintContext(FrozenModel):
    price_range: Optional[PriceRange] = None
    availability: Availability = "purchase_allowed"


class UrgencyContext(FrozenModel):
    level: UrgencyLevel = "medium"
    drinking_window_priority: bool = False
    immediate_need: bool = False
    planning_ahead: bool = False


class ContextAnalysis(FrozenModel):
    """Structured signals extracted from one request."""

    occasion: OccasionContext
    food_pairing: FoodPairingContext
    preferences: PreferenceContext
    constraints: ConstraintContext
    urgency: UrgencyContext


# ============================================================================
# Prompt policy
# ============================================================================


class ResponseGuidelines(FrozenModel):
    """Response policy handed to the validator and enhancer."""

    no_emojis: Literal[True] = True
    tone: Literal["professional_sommelier"] = "professional_sommelier"
    include_education: bool = False
    vocabulary_level: VocabularyLevel = "intermediate"
    max_length: Annotated[int, Field(gt=0)] = 1500


class PromptTemplate(FrozenModel):
    system_prompt: Annotated[str, Field(min_length=1)]
    user_experience_level: ExperienceLevel
    response_guidelines: ResponseGuidelines


class ModelParams(FrozenModel):
    model: Annotated[str, Field(min_length=1)]
    temperature: Annotated[float, Field(ge=0.0, le=2.0)] = 0.7
    max_tokens: Annotated[int, Field(gt=0)] = 1500


class CompletionResult(FrozenModel):
    text: str
    tokens_used: Annotated[int, Field(ge=0)] = 0


class KnowledgeItem(FrozenModel):
    """A snippet retrieved from the vector knowledge store."""

    id: str
    type: str = "wine_data"
    content: str
    source: str = "vector_database"
    confidence: Annotated[float, Field(ge=0.0, le=1.0, description="Similarity score")]
    metadata: dict[str, Any] = Field(default_factory=dict)


# ============================================================================
# Validation
# ============================================================================


class ResponseValidationError(BaseModel):
    """A policy violation; any of these forces `passed=False`."""

    type: str
    message: str
    severity: Severity
    details: List[str] = Field(default_factory=list)


class ResponseValidationWarning(BaseModel):
    """A quality concern that never blocks a response."""

    type: str
    message: str
    suggestion: str


class ValidationResult(BaseModel):
    passed: bool
    errors: List[ResponseValidationError] = Field(default_factory=list)
    warnings: List[ResponseValidationWarning] = Field(default_factory=list)
    score: Annotated[int, Field(ge=0, le=100)]

    def error_types(self) -> List[str]:
        return [error.type for error in self.errors]


# ============================================================================
# Response
# ============================================================================


class SuggestedWine(BaseModel):
    """A wine to buy that is not in the user's cellar."""

    name: Annotated[str, Field(min_length=1)]
    producer: Annotated[str, Field(min_length=1)]
    vintage: Optional[int] = None
    region: str = "Various"
    country: str = ""
    varietal: List[str] = Field(default_factory=list)
    type: WineType = "red"
    estimated_price: Optional[PriceRange] = None


class Recommendation(BaseModel):
    """One recommended wine (or action) with its justification."""

    type: RecommendationType
    wine_id: Optional[str] = None
    suggested_wine: Optional[SuggestedWine] = None
    reasoning: Annotated[str, Field(min_length=1)]
    confidence: Annotated[float, Field(gt=0.0, le=1.0)]
    educational_context: Optional[str] = None

    @field_validator("reasoning")
    @classmethod
    def validate_reasoning(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("reasoning must not be blank")
        return v


class ResponseMetadata(BaseModel):
    request_id: str = ""
    model: str
    tokens_used: Annotated[int, Field(ge=0)] = 0
    response_time: Annotated[float, Field(ge=0.0, description="Elapsed milliseconds")]
    validation_passed: bool
    validation_errors: List[str] = Field(default_factory=list)
    confidence: Annotated[float, Field(ge=0.0, le=1.0)]


class RecommendationResponse(BaseModel):
    """Result of one pipeline run. Always well-formed, even on fallback."""

    recommendations: Annotated[List[Recommendation], Field(default_factory=list, max_length=3)]
    reasoning: str
    confidence: Annotated[float, Field(ge=0.0, le=1.0)]
    educational_notes: Optional[str] = None
    follow_up_questions: Annotated[Optional[List[str]], Field(max_length=2)] = None
    response_metadata: ResponseMetadata
