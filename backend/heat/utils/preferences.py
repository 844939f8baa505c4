"""Story preference vocabularies and the validated preferences model"""
from typing import List, Literal, Optional, get_args

from pydantic import BaseModel, ConfigDict, Field

Genre = Literal["contemporary", "fantasy", "paranormal", "historical", "sci-fi", "small-town"]
Trope = Literal[
    "enemies-to-lovers",
    "fake-dating",
    "second-chance",
    "forced-proximity",
    "childhood-friends",
    "ceo-romance",
    "forbidden-love",
    "fated-mates",
    "time-travel",
]
Pacing = Literal["slow-burn", "fast-paced"]
SceneLength = Literal["short", "medium", "long"]
PovCharacterGender = Literal[
    "male",
    "female",
    "non-binary",
    "genderqueer",
    "trans-man",
    "trans-woman",
    "agender",
    "genderfluid",
]

GENRES = get_args(Genre)
TROPES = get_args(Trope)
PACING_OPTIONS = get_args(Pacing)
SCENE_LENGTH_OPTIONS = get_args(SceneLength)
POV_CHARACTER_GENDER_OPTIONS = get_args(PovCharacterGender)

DEFAULT_SCENE_LENGTH = "medium"
DEFAULT_POV_CHARACTER_GENDER = "female"

# Seed data for the tropes table
TROPE_LABELS = {
    "enemies-to-lovers": "Enemies to Lovers",
    "fake-dating": "Fake Dating",
    "second-chance": "Second Chance",
    "forced-proximity": "Forced Proximity",
    "childhood-friends": "Childhood Friends",
    "ceo-romance": "CEO Romance",
    "forbidden-love": "Forbidden Love",
    "fated-mates": "Fated Mates",
    "time-travel": "Time Travel",
}


class UserPreferences(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    genres: List[Genre] = Field(..., min_length=1)
    tropes: List[Trope] = Field(..., min_length=1)
    spice_level: int = Field(..., ge=1, le=5, alias="spiceLevel")
    pacing: Pacing
    scene_length: Optional[SceneLength] = Field(None, alias="sceneLength")
    pov_character_gender: Optional[PovCharacterGender] = Field(None, alias="povCharacterGender")

    def to_stored(self) -> dict:
        """Camel-cased dict with the optional fields defaulted, as kept in JSON columns"""
        return {
            "genres": list(self.genres),
            "tropes": list(self.tropes),
            "spiceLevel": self.spice_level,
            "pacing": self.pacing,
            "sceneLength": self.scene_length or DEFAULT_SCENE_LENGTH,
            "povCharacterGender": self.pov_character_gender or DEFAULT_POV_CHARACTER_GENDER,
        }
