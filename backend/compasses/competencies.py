"""Competency catalog and experience-level tables.

The catalog is fixed reference data: every nurse is assessed against a
subset of it, drawn per login by :func:`build_assessment_competencies`.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

LANGUAGES: Tuple[str, ...] = ("th", "en")

FUNCTIONAL = "Functional"
SPECIFIC = "Specific"
MANAGERIAL = "Managerial"


@dataclass(frozen=True)
class CompetencyItem:
	id: str
	category: str
	name_th: str
	name_en: str

	def name(self, language: str) -> str:
		return self.name_th if language == "th" else self.name_en


COMPETENCIES: List[CompetencyItem] = [
	CompetencyItem("f1", FUNCTIONAL, "จิตสำนึกการให้บริการ (Service Mind)", "Service Mind"),
	CompetencyItem("f2", FUNCTIONAL, "การแก้ไขปัญหาและการตัดสินใจ (Problem Solving)", "Problem Solving & Decision Making"),
	CompetencyItem("f3", FUNCTIONAL, "การสื่อสารอย่างมีประสิทธิภาพ", "Effective Communication"),
	CompetencyItem("f4", FUNCTIONAL, "การทำงานเป็นทีมและความร่วมมือ", "Teamwork & Collaboration"),
	CompetencyItem("s1", SPECIFIC, "การจัดการความเสี่ยงทางคลินิก", "Clinical Risk Management"),
	CompetencyItem("s2", SPECIFIC, "การพยาบาลผู้ป่วยวิกฤต", "Critical Care Nursing"),
	CompetencyItem("m1", MANAGERIAL, "ความเป็นผู้นำ (Leadership)", "Leadership"),
	CompetencyItem("m2", MANAGERIAL, "ศักยภาพเพื่อนำการเปลี่ยนแปลง (Change Management)", "Change Management"),
	CompetencyItem("m3", MANAGERIAL, "การบริหารทรัพยากรบุคคล", "People Management"),
	CompetencyItem("m4", MANAGERIAL, "การคิดเชิงกลยุทธ์", "Strategic Thinking"),
	CompetencyItem("m5", MANAGERIAL, "การบริหารคุณภาพงานบริการ", "Quality Management"),
]

_BY_ID: Dict[str, CompetencyItem] = {c.id: c for c in COMPETENCIES}

# (functional, specific, managerial) counts in one assessment set
ASSESSMENT_MIX: Tuple[int, int, int] = (2, 2, 2)


def get_competency(competency_id: str) -> Optional[CompetencyItem]:
	return _BY_ID.get(competency_id)


def build_assessment_competencies(rng: Optional[random.Random] = None) -> List[CompetencyItem]:
	"""Draw one assessment set.

	Functional and managerial items are sampled without replacement, specific
	items are taken in catalog order.
	"""
	rng = rng or random.Random()
	functional_count, specific_count, managerial_count = ASSESSMENT_MIX
	functional = [c for c in COMPETENCIES if c.category == FUNCTIONAL]
	specific = [c for c in COMPETENCIES if c.category == SPECIFIC]
	managerial = [c for c in COMPETENCIES if c.category == MANAGERIAL]
	return [
		*rng.sample(functional, functional_count),
		*specific[:specific_count],
		*rng.sample(managerial, managerial_count),
	]


def get_level_data(experience_years: float) -> Dict[str, int]:
	"""Map years of experience to a (level, standardScore) pair."""
	if experience_years <= 1:
		return {"level": 1, "standardScore": 1}
	if experience_years <= 2:
		return {"level": 2, "standardScore": 1}
	if experience_years <= 3:
		return {"level": 3, "standardScore": 2}
	if experience_years <= 5:
		return {"level": 4, "standardScore": 3}
	return {"level": 5, "standardScore": 4}


def difficulty_tier(experience_years: float) -> Tuple[str, str]:
	"""Return (tier label, target question length) for scenario generation."""
	if experience_years <= 2:
		return "Beginner (Novice)", "short and simple (2-3 sentences)"
	if experience_years <= 5:
		return "Intermediate (Proficient)", "moderate length (3-4 sentences)"
	if experience_years <= 10:
		return "Advanced (Highly Competent)", "detailed (4-5 sentences)"
	return "Expert (Senior Leader)", "comprehensive and complex (5-6 sentences)"


def language_name(language: str) -> str:
	return "Thai" if language == "th" else "English"
