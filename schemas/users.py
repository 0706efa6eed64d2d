from typing import Dict, Optional

from pydantic import Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from schemas.common import CamelModel

# Onboarding answers: option key -> label shown by the web client
USER_PREFERENCE_CATEGORIES: Dict[str, Dict[str, str]] = {
    "ageRange": {
        "18-24": "Young (18-24)",
        "25-34": "Young adult (25-34)",
        "35-44": "Adult (35-44)",
        "45-54": "Mature (45-54)",
        "55+": "Experienced (55+)",
    },
    "coffeePersonality": {
        "quick": "Quick - espresso and go",
        "balanced": "Balanced - a regular coffee",
        "slow": "Relaxed - a slow cappuccino",
    },
    "socialEnergy": {
        "introvert": "Introvert - I prefer one-to-one talks",
        "ambivert": "Balanced - depends on the mood",
        "extrovert": "Extrovert - I love meeting lots of people",
    },
    "conversationTopics": {
        "work": "Work and career",
        "hobbies": "Hobbies and passions",
        "life_stories": "Life stories",
        "current_events": "Current events",
        "creative": "Art and creativity",
    },
    "groupPreference": {
        "one_on_one": "One-on-one",
        "small_group": "Small group (3-4 people)",
        "larger_group": "Larger group (5+ people)",
    },
    "locationPreference": {
        "quiet": "Quiet and private",
        "lively": "Lively, social cafe",
        "outdoor": "Outdoor terrace or garden",
        "coworking": "Coworking friendly",
    },
    "timePreference": {
        "spontaneous": "Spontaneous",
        "flexible": "Flexible with some notice",
        "planned": "Planned ahead",
    },
    "socialGoals": {
        "friendship": "New friendships",
        "networking": "Professional networking",
        "fun": "Just for fun",
        "learning": "Exchanging knowledge",
    },
    "meetingFrequency": {
        "daily": "Daily",
        "weekly": "Weekly",
        "biweekly": "Every two weeks",
        "monthly": "Monthly",
    },
}

PREFERENCE_FIELDS = list(USER_PREFERENCE_CATEGORIES)

# conversationTopics may hold several comma separated options
MULTI_VALUE_FIELDS = {"conversationTopics"}

PUBLIC_USER_FIELDS = (
    "id", "firstName", "lastName", "username", "email", "phoneNumber", "bio", "profilePic",
    "isEmailVerified", "isPhoneVerified", "onboardingCompleted", "createdAt", "updatedAt",
    *PREFERENCE_FIELDS,
)


def validate_preference(field: str, value: str) -> str:
    options = USER_PREFERENCE_CATEGORIES[field]
    values = [v.strip() for v in value.split(",")] if field in MULTI_VALUE_FIELDS else [value]
    invalid = [v for v in values if v not in options]
    if invalid:
        raise ValueError(f"Invalid value for {field}: {', '.join(invalid)}")
    return ",".join(values)


def public_user(user: dict) -> dict:
    return {k: user.get(k) for k in PUBLIC_USER_FIELDS if k in user}


def public_profile(user: dict) -> dict:
    """The subset of a user shown to other people on the map."""
    return {
        "userId": user["id"],
        "name": f"{user.get('firstName', '')} {user.get('lastName', '')}".strip() or user.get("username"),
        "username": user.get("username"),
        "bio": user.get("bio"),
        "avatar": user.get("profilePic"),
        "coffeePersonality": user.get("coffeePersonality"),
        "conversationTopics": user.get("conversationTopics"),
    }


class PreferencesRequest(CamelModel):
    age_range: Optional[str] = None
    coffee_personality: Optional[str] = None
    social_energy: Optional[str] = None
    conversation_topics: Optional[str] = None
    group_preference: Optional[str] = None
    location_preference: Optional[str] = None
    time_preference: Optional[str] = None
    social_goals: Optional[str] = None
    meeting_frequency: Optional[str] = None
    completed: Optional[bool] = True

    @model_validator(mode="after")
    def check_options(self):
        for name in type(self).model_fields:
            alias = to_camel(name)
            value = getattr(self, name)
            if alias in USER_PREFERENCE_CATEGORIES and value is not None:
                setattr(self, name, validate_preference(alias, value))
        return self

    def preferences(self) -> dict:
        return self.model_dump(by_alias=True, exclude={"completed"}, exclude_none=True)


class PreferenceUpdateRequest(CamelModel):
    value: str = Field(min_length=1)


class ProfileUpdateRequest(CamelModel):
    first_name: Optional[str] = Field(default=None, min_length=2)
    last_name: Optional[str] = Field(default=None, min_length=2)
    bio: Optional[str] = Field(default=None, max_length=500)
    username: Optional[str] = Field(default=None, min_length=3)

    @field_validator("username")
    @classmethod
    def no_spaces(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and " " in value:
            raise ValueError("Username cannot contain spaces")
        return value
