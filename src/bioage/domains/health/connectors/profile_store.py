"""Profile preferences (age, sex, ethnicity) on top of an injected KeyValueStore."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any

from bioage.core.storage.kv_store import KeyValueStore
from bioage.domains.health.domain_logic.bio_age import age_from_date_of_birth
from bioage.domains.health.domain_logic.models import SEXES, ImportResult

logger = logging.getLogger(__name__)

AGE_KEY = "age"
SEX_KEY = "sex"
ETHNICITY_KEY = "ethnicity"

MIN_AGE = 18
MAX_AGE = 100


class ProfileValidationError(ValueError):
    """Raised when a profile value is out of range or unknown."""


@dataclass(frozen=True)
class Profile:
    age: int
    sex: str
    ethnicity: str

    def to_dict(self) -> dict[str, Any]:
        return {"age": self.age, "sex": self.sex, "ethnicity": self.ethnicity}


class ProfileService:
    """Reads preferences with defaults and validates writes.

    Usage::

        profiles = ProfileService(InMemoryKeyValueStore(), ethnicities={"general"})
        profiles.update(age=52, sex="male")
        profiles.load()  # Profile(age=52, sex='male', ethnicity='general')
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        ethnicities: set[str] | frozenset[str],
        default_age: int = 40,
        default_sex: str = "female",
        default_ethnicity: str = "general",
    ) -> None:
        self._store = store
        self._ethnicities = frozenset(ethnicities)
        self._defaults = Profile(age=default_age, sex=default_sex, ethnicity=default_ethnicity)

    def load(self) -> Profile:
        """Current profile; unreadable or invalid stored values fall back to defaults."""
        age = self._defaults.age
        raw_age = self._store.get(AGE_KEY)
        if raw_age is not None:
            try:
                age = self._check_age(int(raw_age))
            except (ValueError, ProfileValidationError):
                logger.warning("Ignoring invalid stored age %r", raw_age)

        sex = self._store.get(SEX_KEY)
        if sex not in SEXES:
            sex = self._defaults.sex

        ethnicity = self._store.get(ETHNICITY_KEY)
        if ethnicity not in self._ethnicities:
            ethnicity = self._defaults.ethnicity

        return Profile(age=age, sex=sex, ethnicity=ethnicity)

    def update(
        self,
        *,
        age: int | None = None,
        sex: str | None = None,
        ethnicity: str | None = None,
    ) -> Profile:
        """Validate every supplied field first, then write them.

        Raises:
            ProfileValidationError: any field is invalid (nothing is written).
        """
        if age is not None:
            self._check_age(age)
        if sex is not None and sex not in SEXES:
            raise ProfileValidationError(f"Unknown sex {sex!r}; expected one of: {', '.join(SEXES)}")
        if ethnicity is not None and ethnicity not in self._ethnicities:
            raise ProfileValidationError(
                f"Unknown ethnicity {ethnicity!r}; expected one of: {', '.join(sorted(self._ethnicities))}"
            )

        if age is not None:
            self._store.set(AGE_KEY, str(age))
        if sex is not None:
            self._store.set(SEX_KEY, sex)
        if ethnicity is not None:
            self._store.set(ETHNICITY_KEY, ethnicity)
        return self.load()

    def apply_import(self, result: ImportResult, today: date | None = None) -> Profile:
        """Adopt sex and age detected in an export, where present."""
        if result.detected_sex in SEXES:
            self._store.set(SEX_KEY, result.detected_sex)
        if result.detected_date_of_birth:
            try:
                age = age_from_date_of_birth(result.detected_date_of_birth, today)
            except ValueError:
                logger.warning("Ignoring unparseable date of birth %r", result.detected_date_of_birth)
            else:
                if MIN_AGE <= age <= MAX_AGE:
                    self._store.set(AGE_KEY, str(age))
                else:
                    logger.info("Detected age %d outside %d-%d; keeping stored age", age, MIN_AGE, MAX_AGE)
        return self.load()

    @staticmethod
    def _check_age(age: int) -> int:
        if isinstance(age, bool) or not isinstance(age, int) or not MIN_AGE <= age <= MAX_AGE:
            raise ProfileValidationError(f"Age must be a whole number between {MIN_AGE} and {MAX_AGE}")
        return age
