"""Per-attempt randomization of question and option order.

Both shuffles are Fisher-Yates over a copy of the input, driven by a
``random.Random`` instance supplied by the caller so tests can pass a
seeded source.
"""

import random
from typing import Optional, Sequence, TypeVar

from pydantic import BaseModel, ConfigDict, model_validator

from grasp.quiz_store import OPTION_KEYS, Option, QuestionDefinition

T = TypeVar("T")


class QuestionView(BaseModel):
    """A question as presented in one attempt, with relabeled options."""

    model_config = ConfigDict(frozen=True)

    question: QuestionDefinition
    options: tuple[Option, ...]
    correct_key: str

    @model_validator(mode="after")
    def _check_correct_key(self):
        if self.option(self.correct_key) is None:
            raise ValueError(f"correct key {self.correct_key!r} is not an option")
        return self

    def option(self, key: str) -> Optional[Option]:
        for option in self.options:
            if option.key == key:
                return option
        return None

    def is_correct(self, key: str) -> bool:
        return key == self.correct_key

    @property
    def correct_text(self) -> str:
        return self.option(self.correct_key).text


def fisher_yates(items: Sequence[T], rng: random.Random) -> list[T]:
    """Return a uniformly random permutation of ``items``."""

    shuffled = list(items)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def shuffle_questions(
    questions: Sequence[QuestionDefinition], rng: random.Random
) -> list[QuestionDefinition]:
    return fisher_yates(questions, rng)


def shuffle_options(
    question: QuestionDefinition, rng: random.Random
) -> QuestionView:
    """Shuffle (key, text) pairs as units and relabel them A, B, C...

    The correct pair is marked before shuffling, so the correct text stays
    correct even when two options share the same text.
    """

    marked = [(option, option.key == question.correct_key) for option in question.options]
    relabeled = []
    correct_key = None
    for new_key, (option, was_correct) in zip(OPTION_KEYS, fisher_yates(marked, rng)):
        relabeled.append(
            Option(key=new_key, text=option.text, feedback=option.feedback)
        )
        if was_correct:
            correct_key = new_key
    return QuestionView(
        question=question, options=tuple(relabeled), correct_key=correct_key
    )


def build_views(
    questions: Sequence[QuestionDefinition], rng: random.Random
) -> list[QuestionView]:
    """Randomize question order, then the options of every question."""

    return [shuffle_options(q, rng) for q in shuffle_questions(questions, rng)]
