"""Question records and the sources a match draws them from."""

import random
import secrets
import string
import time
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Tuple

import httpx
from cachetools import TTLCache
from flask import current_app

from .errors import SourceUnavailable, ValidationError


VISUAL = 'visual'
TEXT = 'text'
DIFFICULTIES = ('easy', 'medium', 'hard')


def generate_question_id() -> str:
    suffix = ''.join(secrets.choice(string.ascii_lowercase + string.digits) for _ in range(9))
    return f"q_{int(time.time() * 1000)}_{suffix}"


@dataclass(frozen=True)
class Question:
    id: str
    kind: str
    correct_answer: str
    time_limit_seconds: int = 30
    prompt: Optional[str] = None
    image_ref: Optional[str] = None
    choices: Optional[Tuple[str, ...]] = None
    category: Optional[str] = None
    difficulty: Optional[str] = None

    def __post_init__(self):
        if self.kind not in (VISUAL, TEXT):
            raise ValidationError(f'Unknown question kind: {self.kind}')
        if self.correct_answer is None or self.correct_answer == '':
            raise ValidationError('Question needs a correct answer')
        if self.time_limit_seconds <= 0:
            raise ValidationError('Question time limit must be positive')
        if self.choices is not None:
            object.__setattr__(self, 'choices', tuple(self.choices))
            if self.kind == TEXT and self.correct_answer not in self.choices:
                raise ValidationError('Correct answer must be one of the choices')

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'kind': self.kind,
            'prompt': self.prompt,
            'image_ref': self.image_ref,
            'choices': list(self.choices) if self.choices is not None else None,
            'correct_answer': self.correct_answer,
            'category': self.category,
            'difficulty': self.difficulty,
            'time_limit_seconds': self.time_limit_seconds,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'Question':
        return cls(
            id=data['id'],
            kind=data['kind'],
            correct_answer=data['correct_answer'],
            time_limit_seconds=int(data.get('time_limit_seconds') or 30),
            prompt=data.get('prompt'),
            image_ref=data.get('image_ref'),
            choices=data.get('choices'),
            category=data.get('category'),
            difficulty=data.get('difficulty'),
        )


# (prompt, choices, answer, category, difficulty)
FALLBACK_POOL = [
    ('What is the capital of France?', ['London', 'Berlin', 'Paris', 'Madrid'], 'Paris', 'Geography', 'easy'),
    ('Which planet is known as the Red Planet?', ['Venus', 'Mars', 'Jupiter', 'Saturn'], 'Mars', 'Science', 'easy'),
    ('Who painted the Mona Lisa?', ['Vincent van Gogh', 'Pablo Picasso', 'Leonardo da Vinci', 'Michelangelo'], 'Leonardo da Vinci', 'Art', 'medium'),
    ('What is the largest ocean on Earth?', ['Atlantic Ocean', 'Indian Ocean', 'Arctic Ocean', 'Pacific Ocean'], 'Pacific Ocean', 'Geography', 'easy'),
    ('Which programming language is known as the "language of the web"?', ['Python', 'JavaScript', 'Java', 'C++'], 'JavaScript', 'Technology', 'easy'),
    ('What year did World War II end?', ['1943', '1944', '1945', '1946'], '1945', 'History', 'medium'),
    ('What is the chemical symbol for gold?', ['Go', 'Gd', 'Au', 'Ag'], 'Au', 'Science', 'medium'),
    ('Which country is home to the kangaroo?', ['New Zealand', 'Australia', 'South Africa', 'Brazil'], 'Australia', 'Geography', 'easy'),
    ('What is the smallest prime number?', ['0', '1', '2', '3'], '2', 'Mathematics', 'medium'),
    ('Who wrote "Romeo and Juliet"?', ['Charles Dickens', 'William Shakespeare', 'Jane Austen', 'Mark Twain'], 'William Shakespeare', 'Literature', 'easy'),
    ('What is the speed of light in vacuum?', ['299,792 km/s', '300,000 km/s', '150,000 km/s', '450,000 km/s'], '299,792 km/s', 'Physics', 'hard'),
    ('Which element has the atomic number 1?', ['Helium', 'Hydrogen', 'Oxygen', 'Carbon'], 'Hydrogen', 'Chemistry', 'medium'),
    ('What is the largest mammal in the world?', ['African Elephant', 'Blue Whale', 'Giraffe', 'Polar Bear'], 'Blue Whale', 'Biology', 'easy'),
    ('In which year was the first iPhone released?', ['2005', '2006', '2007', '2008'], '2007', 'Technology', 'medium'),
    ('What is the tallest mountain in the world?', ['K2', 'Kangchenjunga', 'Mount Everest', 'Lhotse'], 'Mount Everest', 'Geography', 'easy'),
    ('Which gas do plants absorb from the atmosphere?', ['Oxygen', 'Nitrogen', 'Carbon Dioxide', 'Hydrogen'], 'Carbon Dioxide', 'Biology', 'easy'),
    ('Who developed the theory of relativity?', ['Isaac Newton', 'Albert Einstein', 'Galileo Galilei', 'Stephen Hawking'], 'Albert Einstein', 'Physics', 'easy'),
    ('What is the main programming paradigm of JavaScript?', ['Object-oriented', 'Functional', 'Multi-paradigm', 'Procedural'], 'Multi-paradigm', 'Technology', 'hard'),
    ('How many continents are there?', ['5', '6', '7', '8'], '7', 'Geography', 'easy'),
    ('What is the boiling point of water at sea level?', ['90°C', '100°C', '110°C', '120°C'], '100°C', 'Science', 'easy'),
    ('Which programming language is best known for data science?', ['JavaScript', 'Python', 'C#', 'Ruby'], 'Python', 'Technology', 'easy'),
    ('What is the currency of Japan?', ['Yuan', 'Won', 'Yen', 'Ringgit'], 'Yen', 'Geography', 'easy'),
    ('Who is known as the father of computers?', ['Alan Turing', 'Charles Babbage', 'John von Neumann', 'Bill Gates'], 'Charles Babbage', 'Technology', 'medium'),
    ('What is the largest planet in our solar system?', ['Saturn', 'Jupiter', 'Uranus', 'Neptune'], 'Jupiter', 'Science', 'easy'),
    ('Which year did the Berlin Wall fall?', ['1987', '1988', '1989', '1990'], '1989', 'History', 'medium'),
]


def fallback_questions(count: int, difficulty: Optional[str] = None,
                       time_limit_seconds: int = 30, rng: Optional[random.Random] = None) -> List[Question]:
    """Draw ``count`` text questions from the static pool.

    Narrows to ``difficulty`` only when the pool has enough of that tag,
    and repeats entries when ``count`` exceeds the pool.
    """
    rng = rng or random
    pool = list(FALLBACK_POOL)
    if difficulty:
        tagged = [entry for entry in pool if entry[4] == difficulty]
        if len(tagged) >= count:
            pool = tagged
    rng.shuffle(pool)
    selected = pool[:count]
    while len(selected) < count:
        selected.append(pool[len(selected) % len(pool)])
    return [
        Question(
            id=generate_question_id(),
            kind=TEXT,
            prompt=prompt,
            choices=tuple(choices),
            correct_answer=answer,
            category=category,
            difficulty=tag,
            time_limit_seconds=time_limit_seconds,
        )
        for prompt, choices, answer, category, tag in selected
    ]


class BananaQuestionSource:
    """Visual arithmetic puzzles from the Banana API, one request per puzzle."""

    def __init__(self, api_url: str, timeout_sec: float = 5.0, retries: int = 2,
                 pause_sec: float = 0.3, client: Optional[httpx.Client] = None):
        self.api_url = api_url
        self.retries = max(1, retries)
        self.pause_sec = pause_sec
        self.client = client or httpx.Client(timeout=timeout_sec, headers={'User-Agent': 'MonkeyMindGame/1.0'})

    def _fetch_one(self) -> Question:
        response = self.client.get(self.api_url)
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError(f'Expected a JSON object, got {type(data).__name__}')
        image = data.get('question')
        if not image:
            raise ValueError('No question image in response')
        answer = data.get('answer', data.get('solution'))
        if answer is None or str(answer) == '':
            raise ValueError('No answer in response')
        return Question(
            id=generate_question_id(),
            kind=VISUAL,
            image_ref=image,
            correct_answer=str(answer),
            category='Visual Puzzle',
            difficulty='medium',
        )

    def fetch_questions(self, count: int, difficulty: Optional[str] = None) -> List[Question]:
        questions: List[Question] = []
        for i in range(count):
            last_error = None
            for _attempt in range(self.retries):
                try:
                    questions.append(self._fetch_one())
                    break
                except (httpx.HTTPError, ValueError) as exc:
                    last_error = exc
            else:
                current_app.logger.warning(f"[questions-fail] puzzle={i + 1}/{count} retries={self.retries} error={last_error}")
                raise SourceUnavailable(f'Puzzle {i + 1} failed after {self.retries} attempts')
            if self.pause_sec and i < count - 1:
                time.sleep(self.pause_sec)
        return questions


@dataclass
class QuestionProvider:
    """Draws the question snapshot for a new match.

    Remote batches are cached by (count, difficulty); any upstream failure
    swaps the whole batch for the fallback pool. Batches served from the
    cache get fresh ids so a replayed puzzle cannot be matched to an
    answer revealed in an earlier match.
    """
    source: Optional[BananaQuestionSource] = None
    cache_ttl_sec: int = 3600
    _cache: TTLCache = field(init=False, repr=False)

    def __post_init__(self):
        self._cache = TTLCache(maxsize=64, ttl=self.cache_ttl_sec)

    def prefetch(self, count: int, difficulty: Optional[str] = None, time_limit_seconds: int = 30) -> List[Question]:
        if self.source is None:
            return fallback_questions(count, difficulty, time_limit_seconds)
        key = f"{count}-{difficulty or 'any'}"
        questions = self._cache.get(key)
        if questions is not None and len(questions) >= count:
            return [replace(q, id=generate_question_id(), time_limit_seconds=time_limit_seconds)
                    for q in questions[:count]]
        try:
            questions = self.source.fetch_questions(count, difficulty)
        except Exception as exc:
            # Upstream trouble of any shape never blocks a match start
            current_app.logger.warning(f"[questions-fallback] count={count} difficulty={difficulty} reason={exc!r}")
            return fallback_questions(count, difficulty, time_limit_seconds)
        self._cache[key] = questions
        return [replace(q, time_limit_seconds=time_limit_seconds) for q in questions[:count]]

    def clear_cache(self) -> None:
        self._cache.clear()
