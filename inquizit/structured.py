import math
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional


@dataclass
class CardUsage:
    """One card's usage row inside a free-form session."""
    card_id: str
    total_uses: int = 0
    recognition_score: float = 0.0
    reasoning_score: float = 0.0
    last_used_turn: Optional[int] = None

    def turns_since_last_use(self, current_turn: int) -> float:
        # A card that was never shown has no cooldown to wait out
        if self.last_used_turn is None:
            return math.inf
        return current_turn - self.last_used_turn


@dataclass
class CardContent:
    """Static card content as read from the durable store."""
    card_id: str
    card_idea: str
    words_to_avoid: List[str]
    components: List[Dict[str, str]]
    valid_permutations: List[str]
    title: str = ""
    description: str = ""
    banner: str = ""


@dataclass
class SeedChoice:
    items: List[str]
    bundle_index: Optional[int]
    source_card_id: str


@dataclass
class GenerationIndices:
    permutation_index_1: int
    seed_history_index: int
    chosen_card_for_seed: str
    permutation_index_2: Optional[int] = None


@dataclass
class ConceptData:
    id: str
    banner: str
    title: str
    description: str
    reasoning: str
    status: str = "question"
    recognitionScore: float = 0.0
    reasoningScore: float = 0.0
    isNewCard: Optional[bool] = None
    initialCardState: Optional[Dict[str, Any]] = None


@dataclass
class QuizitData:
    quizit: str
    quizitId: str


@dataclass
class Face:
    faceType: str
    quizitData: Optional[QuizitData] = None
    conceptData: Optional[ConceptData] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"faceType": self.faceType}
        if self.quizitData is not None:
            data["quizitData"] = asdict(self.quizitData)
        if self.conceptData is not None:
            concept = asdict(self.conceptData)
            # Spaced-repetition metadata is only attached by the scheduler
            if concept["isNewCard"] is None:
                concept.pop("isNewCard")
                concept.pop("initialCardState")
            data["conceptData"] = concept
        return data


@dataclass
class GeneratedQuizit:
    quizit_id: str
    faces: List[Face] = field(default_factory=list)
