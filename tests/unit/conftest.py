"""Shared builders for unit tests."""

from typing import Callable, List, Optional

import pytest

from sommelier.models.models import (
    CompletionResult,
    FlavorProfile,
    ModelParams,
    RecommendationContext,
    RecommendationRequest,
    TasteProfile,
    TastingRecord,
    Wine,
)


GOOD_RESPONSE = (
    "For grilled steak I recommend the Caymus 2019 Cabernet Sauvignon because its firm tannins "
    "and dark fruit stand up to charred beef. This wine comes from the Napa Valley region and pairs well "
    "with rich sauces. Consider decanting it for an hour before serving."
)


@pytest.fixture
def make_wine() -> Callable[..., Wine]:
    def _make(**overrides) -> Wine:
        data = {
            "id": "wine-1",
            "name": "Special Selection Cabernet Sauvignon",
            "producer": "Caymus Vineyards",
            "vintage": 2019,
            "region": "Napa Valley",
            "country": "USA",
            "varietal": ["Cabernet Sauvignon"],
            "type": "red",
            "quantity": 2,
        }
        data.update(overrides)
        return Wine(**data)

    return _make


@pytest.fixture
def taste_profile() -> TasteProfile:
    return TasteProfile(
        user_id="user-1",
        red_wine_preferences=FlavorProfile(
            body="full",
            preferred_regions=["Napa Valley", "Bordeaux"],
            preferred_varietals=["Cabernet Sauvignon", "Merlot"],
            disliked_characteristics=["overly oaky"],
        ),
        white_wine_preferences=FlavorProfile(
            preferred_varietals=["Chardonnay"],
            disliked_characteristics=["too sweet"],
        ),
        sparkling_preferences=FlavorProfile(disliked_characteristics=["overly oaky"]),
        learning_history=[
            TastingRecord(wine_id="w-a", rating=5),
            TastingRecord(wine_id="w-b", rating=3),
            TastingRecord(wine_id="w-c", rating=4),
        ],
    )


@pytest.fixture
def make_request(taste_profile) -> Callable[..., RecommendationRequest]:
    def _make(
        query: str = "Recommend a wine",
        occasion: Optional[str] = None,
        food_pairing: Optional[str] = None,
        inventory: Optional[List[Wine]] = None,
        experience_level: str = "intermediate",
        season: Optional[str] = "summer",
        companions: Optional[List[str]] = None,
        profile: Optional[TasteProfile] = None,
    ) -> RecommendationRequest:
        return RecommendationRequest(
            user_id="user-1",
            query=query,
            context=RecommendationContext(
                occasion=occasion,
                food_pairing=food_pairing,
                season=season,
                companions=companions or [],
            ),
            user_profile=profile or taste_profile,
            inventory=inventory,
            experience_level=experience_level,
        )

    return _make


@pytest.fixture
def model_params() -> ModelParams:
    return ModelParams(model="gemini-2.5-flash", temperature=0.7, max_tokens=1500)


class StubCompletionClient:
    """Plays back a scripted sequence of results or exceptions."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    async def complete(self, system_prompt, user_prompt, params):
        self.calls.append((system_prompt, user_prompt, params))
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, str):
            return CompletionResult(text=outcome, tokens_used=420)
        return outcome


@pytest.fixture
def stub_completion_client():
    return StubCompletionClient


async def no_sleep(_delay: float) -> None:
    return None


@pytest.fixture
def instant_sleep():
    return no_sleep


@pytest.fixture
def good_response_text() -> str:
    return GOOD_RESPONSE
